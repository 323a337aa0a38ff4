"""
Bulk tracking refresh for stored courier orders.

Tracking numbers are sent to the courier's bulk tracking endpoint in batches;
batches run concurrently with bounded concurrency and settle independently,
so one failed batch is reported without discarding the others. The latest
status of every tracked shipment is written back as last_status /
last_status_time. Optionally sweeps per-shipment payment status as well.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm import Session

from courierhub.config import settings
from courierhub.models.enums import Courier, parse_courier
from courierhub.services import order_store, postex_service
from courierhub.services.batching import chunked, run_settled
from courierhub.services.courier_types import CourierCredentials, ItemFailure
from courierhub.services.errors import UnsupportedCourierOperation
from courierhub.utils.normalization import first_non_blank, normalize_identifier, parse_datetime

logger = logging.getLogger(__name__)

TRACKING_SUPPORTED = (Courier.POSTEX,)


@dataclass
class TrackingRefreshResult:
    requested: int = 0
    statuses: List[Dict[str, Any]] = field(default_factory=list)
    payment_statuses: List[Dict[str, Any]] = field(default_factory=list)
    updated: int = 0
    failures: List[ItemFailure] = field(default_factory=list)


def latest_status(item: Dict[str, Any]) -> Tuple[Optional[str], Optional[datetime]]:
    """
    Latest status and its time from one bulk tracking entry.

    Prefers the last entry of `transactionStatusHistory`; falls back to the
    top-level status fields.
    """
    history = item.get("transactionStatusHistory")
    if isinstance(history, list) and history:
        last = history[-1] if isinstance(history[-1], dict) else {}
        status = first_non_blank(last.get("transactionStatusMessage"), last.get("transactionStatus"))
        if status:
            return status, parse_datetime(last.get("updatedAt") or last.get("modifiedDatetime"))
    status = first_non_blank(item.get("transactionStatus"), item.get("orderStatus"), item.get("lastStatus"))
    return status, parse_datetime(item.get("lastStatusTime") or item.get("transactionDate"))


def _resolve_supported(courier) -> Courier:
    resolved = parse_courier(courier)
    if resolved not in TRACKING_SUPPORTED:
        raise UnsupportedCourierOperation(f"Bulk tracking is not available for courier: {courier}")
    return resolved


def refresh_tracking(
    db: Session,
    brand_id: str,
    courier,
    credentials: CourierCredentials,
    tracking_numbers: Optional[Sequence[str]] = None,
    include_payment_status: bool = False,
) -> TrackingRefreshResult:
    """
    Refresh tracking for the given shipments, or every stored order of the brand.

    Raises:
        UnsupportedCourierOperation: Courier has no bulk tracking endpoint
        StorageError: Orders could not be read or updated
    """
    resolved = _resolve_supported(courier)
    if tracking_numbers is None:
        tracking_numbers = [o.tracking_number for o in order_store.query_orders(db, brand_id, resolved.value)]
    numbers = list(dict.fromkeys(n for n in (normalize_identifier(t) for t in tracking_numbers) if n))

    result = TrackingRefreshResult(requested=len(numbers))
    if not numbers:
        return result

    batches = [list(batch) for batch in chunked(numbers, settings.TRACKING_BATCH_SIZE)]
    settled = run_settled(
        batches,
        lambda batch: postex_service.track_bulk(credentials, batch),
        batch_size=settings.HTTP_MAX_CONCURRENCY,
        key=lambda batch: f"{batch[0]}..({len(batch)})",
        label="TRACKING",
    )
    result.failures.extend(settled.failures)

    updates: Dict[str, Tuple[Optional[str], Optional[datetime]]] = {}
    for batch_statuses in settled.results:
        for item in batch_statuses:
            tracking_number = normalize_identifier(item.get("trackingNumber"))
            if not tracking_number:
                continue
            result.statuses.append(item)
            status, status_time = latest_status(item)
            if status:
                updates[tracking_number] = (status, status_time)

    result.updated = order_store.apply_status_updates(db, brand_id, resolved.value, updates)

    if include_payment_status:
        payments = run_settled(
            numbers,
            lambda tracking_number: postex_service.fetch_payment_status(credentials, tracking_number),
            batch_size=settings.PAYMENT_STATUS_BATCH_SIZE,
            label="PAYMENT",
        )
        result.payment_statuses = payments.results
        result.failures.extend(payments.failures)

    logger.info(
        f"[TRACKING] brand={brand_id} requested={result.requested} tracked={len(result.statuses)} "
        f"updated={result.updated} failures={len(result.failures)}"
    )
    return result
