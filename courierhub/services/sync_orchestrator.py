"""
Sync orchestrator - cache-first, live-fetch-with-fallback courier sync.

Per brand and courier:

1. CacheRead (skipped when force_live): stored orders in the date window;
   a non-empty result is returned as source=cache.
2. LiveFetch through the courier strategy. Any UpstreamError moves to
   Fallback.
3. Normalize + persist: de-duplicate by tracking number (last one wins),
   compute financials, diff against stored rows, upsert changed rows in
   chunks.
4. Re-read the window from the store and return source=live with a change
   summary.
5. Fallback: re-read the window unconditionally and return source=fallback
   with the upstream error as a warning. A store failure here is fatal
   (StorageError).

Rows whose content is unchanged are not written at all, so repeating a sync
over the same upstream data leaves the store byte-identical.
"""
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from courierhub.models.core import Order
from courierhub.models.enums import Courier, StatusBucket, SyncSource, parse_courier
from courierhub.services import order_store
from courierhub.services.courier_registry import get_strategy
from courierhub.services.courier_strategy import CourierStrategy
from courierhub.services.courier_types import (
    CourierCredentials, DateRange, FetchContext, FetchResult, RawShipment
)
from courierhub.services.errors import StorageError, UpstreamAuthError, UpstreamError, UpstreamTransientError

logger = logging.getLogger(__name__)

ERROR_KIND_AUTH = "auth"
ERROR_KIND_UPSTREAM = "upstream"


@dataclass
class ChangeSummary:
    new: int = 0
    delivered: int = 0
    returned: int = 0
    status_changed: int = 0
    unchanged: int = 0
    conflicts: int = 0
    skipped: int = 0
    failed_items: int = 0
    failed_chunks: int = 0

    def as_dict(self) -> Dict[str, int]:
        return asdict(self)


@dataclass
class SyncResult:
    orders: List[Order]
    source: SyncSource
    warning: Optional[str] = None
    error_kind: Optional[str] = None
    change_summary: Optional[ChangeSummary] = None


def _money(value: float) -> float:
    return round(value or 0.0, 2) + 0.0


def dedupe_shipments(shipments: List[RawShipment]) -> Dict[str, RawShipment]:
    """Last record wins among duplicates of the same tracking number."""
    unique: Dict[str, RawShipment] = {}
    for shipment in shipments:
        unique[shipment.tracking_number] = shipment
    return unique


def resolve_order_date(raw: RawShipment, existing: Optional[Order]) -> Optional[datetime]:
    """
    Dispatch date for a synced row: upstream order_date, else the stored one,
    else the courier's transaction date. Never the wall clock.
    """
    if raw.order_date is not None:
        return raw.order_date
    if existing is not None and existing.order_date is not None:
        return existing.order_date
    return raw.transaction_date


def build_order_row(
    brand_id: str,
    courier: Courier,
    strategy: CourierStrategy,
    raw: RawShipment,
    order_date: datetime,
    existing: Optional[Order],
    fetched_at: datetime,
) -> Dict[str, Any]:
    financials = strategy.compute_financials(raw)

    # Tracking refreshes write last_status separately; keep them when the
    # order listing does not carry one
    last_status = raw.last_status
    last_status_time = raw.last_status_time
    if last_status is None and existing is not None:
        last_status = existing.last_status
        last_status_time = existing.last_status_time

    return {
        "tracking_number": raw.tracking_number,
        "courier": courier.value,
        "brand_id": brand_id,
        "order_ref_number": raw.order_ref_number,
        "customer_name": raw.customer_name,
        "customer_phone": raw.customer_phone,
        "delivery_address": raw.delivery_address,
        "city_name": raw.city_name,
        "order_detail": raw.order_detail,
        "order_type": raw.order_type,
        "order_amount": _money(raw.order_amount),
        "invoice_payment": _money(raw.invoice_payment),
        "transaction_fee": financials.transaction_fee,
        "transaction_tax": financials.transaction_tax,
        "sales_withholding_tax": financials.sales_withholding_tax,
        "upfront_payment": _money(raw.upfront_payment),
        "net_amount": financials.net_amount,
        "order_status": raw.order_status,
        "transaction_status": raw.transaction_status,
        "last_status": last_status,
        "last_status_time": last_status_time,
        "order_date": order_date,
        "transaction_date": raw.transaction_date,
        "last_fetched_at": fetched_at,
    }


def _stored_status(order: Order) -> str:
    return order.transaction_status or order.order_status or order.last_status or ""


def persist_shipments(
    db: Session,
    brand_id: str,
    courier: Courier,
    strategy: CourierStrategy,
    shipments: List[RawShipment],
    clock: Callable[[], datetime] = datetime.utcnow,
) -> ChangeSummary:
    """
    Normalize and upsert fetched shipments, returning what changed.

    Raises:
        StorageError: If existing rows cannot be loaded
    """
    summary = ChangeSummary()
    unique = dedupe_shipments(shipments)
    existing_rows = order_store.load_existing_orders(db, courier.value, list(unique.keys()))
    fetched_at = clock()

    rows: List[Dict[str, Any]] = []
    new_keys: List[str] = []
    for tracking_number, raw in unique.items():
        existing = existing_rows.get(tracking_number)
        if existing is not None and existing.brand_id != brand_id:
            logger.warning(
                f"[SYNC] {courier.value} {tracking_number} belongs to another brand; skipping"
            )
            summary.conflicts += 1
            continue

        order_date = resolve_order_date(raw, existing)
        if order_date is None:
            logger.warning(f"[SYNC] {courier.value} {tracking_number} has no order or transaction date; skipping")
            summary.skipped += 1
            continue

        row = build_order_row(brand_id, courier, strategy, raw, order_date, existing, fetched_at)

        if existing is None:
            summary.new += 1
            new_keys.append(tracking_number)
        else:
            stored = order_store.order_content(existing)
            if all(stored[name] == row[name] for name in order_store.ORDER_CONTENT_COLUMNS):
                summary.unchanged += 1
                continue
            old_status = _stored_status(existing)
            new_status = raw.authoritative_status
            if old_status != new_status:
                summary.status_changed += 1
                old_bucket = strategy.classify(old_status)
                new_bucket = strategy.classify(new_status)
                if new_bucket == StatusBucket.DELIVERED and old_bucket != StatusBucket.DELIVERED:
                    summary.delivered += 1
                if new_bucket == StatusBucket.RETURNED and old_bucket != StatusBucket.RETURNED:
                    summary.returned += 1

        rows.append(row)

    outcome = order_store.upsert_orders(db, rows)
    summary.failed_chunks = len(outcome.failed_chunks)

    # New keys another brand inserted after the load above were left untouched by the guarded upsert
    for tracking_number in order_store.owned_by_other_brand(db, courier.value, new_keys, brand_id):
        logger.warning(
            f"[SYNC] {courier.value} {tracking_number} was claimed by another brand during sync; skipped"
        )
        summary.new -= 1
        summary.conflicts += 1
    return summary


def _fallback(
    db: Session,
    brand_id: str,
    courier: Courier,
    date_range: DateRange,
    error: UpstreamError,
) -> SyncResult:
    error_kind = ERROR_KIND_AUTH if isinstance(error, UpstreamAuthError) else ERROR_KIND_UPSTREAM
    logger.warning(f"[SYNC] {courier.value} live fetch failed for brand={brand_id} ({error_kind}): {error}")
    orders = order_store.query_orders(db, brand_id, courier.value, date_range)
    logger.info(f"[SYNC] served {len(orders)} {courier.value} orders from store after failure")
    return SyncResult(
        orders=orders,
        source=SyncSource.FALLBACK,
        warning=f"{courier.value} live sync failed: {str(error)}",
        error_kind=error_kind,
    )


def sync(
    db: Session,
    brand_id: str,
    courier,
    date_range: Optional[DateRange] = None,
    force_live: bool = False,
    credentials: Optional[CourierCredentials] = None,
    clock: Callable[[], datetime] = datetime.utcnow,
) -> SyncResult:
    """
    Sync one courier's orders for a brand.

    Args:
        courier: Courier enum, value or name
        date_range: Calendar window over order_date; open when omitted
        force_live: Skip the cache read and always hit the upstream
        credentials: Courier token and optional proxy

    Returns:
        SyncResult with source cache, live or fallback

    Raises:
        ValueError: Unknown courier
        StorageError: The store could not be read or written
    """
    resolved = parse_courier(courier)
    strategy = get_strategy(resolved)
    if strategy is None:
        raise ValueError(f"Unknown courier: {courier}")
    date_range = date_range or DateRange()
    credentials = credentials or CourierCredentials()

    if not force_live:
        try:
            cached = order_store.query_orders(db, brand_id, resolved.value, date_range)
            if cached:
                logger.info(f"[SYNC] served {len(cached)} {resolved.value} orders from cache for brand={brand_id}")
                return SyncResult(orders=cached, source=SyncSource.CACHE)
        except StorageError as e:
            logger.error(f"[SYNC] cache read failed, attempting live fetch: {e}")

    context = FetchContext(db=db, brand_id=brand_id, date_range=date_range, credentials=credentials)
    try:
        fetched: FetchResult = strategy.fetch(context)
        if fetched.raw_count and not fetched.shipments and fetched.failures:
            raise UpstreamTransientError(
                f"all {len(fetched.failures)} {resolved.value} items failed: {fetched.failures[0].error}"
            )
    except UpstreamError as e:
        return _fallback(db, brand_id, resolved, date_range, e)

    logger.info(
        f"[SYNC] {resolved.value} fetched {len(fetched.shipments)} shipments "
        f"({len(fetched.failures)} failed) for brand={brand_id}"
    )
    summary = persist_shipments(db, brand_id, resolved, strategy, fetched.shipments, clock=clock)
    summary.failed_items = len(fetched.failures)

    orders = order_store.query_orders(db, brand_id, resolved.value, date_range)
    logger.info(f"[SYNC] {resolved.value} live sync done for brand={brand_id}: {summary.as_dict()}")
    return SyncResult(orders=orders, source=SyncSource.LIVE, change_summary=summary)
