"""
Storefront order store.

Stored storefront orders keep `fulfillments`, `tracking_numbers` and
`line_items` as serialized JSON. They are parsed exactly once here, at the
boundary, into typed StorefrontRecord / Fulfillment values; a malformed or
absent field becomes an empty collection and is logged, never raised.
"""
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from courierhub.models.core import StorefrontOrder
from courierhub.services.courier_types import DateRange
from courierhub.services.errors import MalformedPayloadError, StorageError
from courierhub.services.order_store import UpsertOutcome, upsert_rows
from courierhub.utils.normalization import normalize_identifier

logger = logging.getLogger(__name__)

STOREFRONT_KEY_COLUMNS = ("storefront_order_id",)
STOREFRONT_PINNED_COLUMNS = ("storefront_order_id", "brand_id")


@dataclass(frozen=True)
class Fulfillment:
    tracking_company: Optional[str] = None
    tracking_numbers: Tuple[str, ...] = ()

    def carrier_mentions(self, needle: str) -> bool:
        return needle.lower() in (self.tracking_company or "").lower()


@dataclass(frozen=True)
class StorefrontRecord:
    storefront_order_id: str
    brand_id: str
    order_number: Optional[str] = None
    order_name: Optional[str] = None
    customer_name: Optional[str] = None
    phone: Optional[str] = None
    shipping_address: Optional[str] = None
    shipping_city: Optional[str] = None
    created_at: Optional[datetime] = None
    financial_status: Optional[str] = None
    fulfillment_status: Optional[str] = None
    total_price: float = 0.0
    courier_partner: Optional[str] = None
    line_items: Tuple[Dict[str, Any], ...] = ()
    fulfillments: Tuple[Fulfillment, ...] = ()
    tracking_numbers: Tuple[str, ...] = ()

    def all_tracking_numbers(self) -> List[str]:
        """Top-level tracking numbers plus every fulfillment's, de-duplicated in order."""
        seen: Dict[str, None] = {}
        for number in self.tracking_numbers:
            seen.setdefault(number, None)
        for fulfillment in self.fulfillments:
            for number in fulfillment.tracking_numbers:
                seen.setdefault(number, None)
        return list(seen)

    def line_item_summary(self) -> Optional[str]:
        parts = []
        for item in self.line_items:
            title = normalize_identifier(item.get("title") or item.get("name"))
            if not title:
                continue
            quantity = item.get("quantity") or 1
            parts.append(f"{quantity} x {title}")
        return ", ".join(parts) if parts else None


def _load_json_list(raw: Optional[str], field_name: str) -> List[Any]:
    if raw is None or raw == "":
        return []
    try:
        value = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise MalformedPayloadError(f"{field_name} is not valid JSON: {str(e)}")
    if value is None:
        return []
    if not isinstance(value, list):
        raise MalformedPayloadError(f"{field_name} is not a list")
    return value


def _safe_json_list(raw: Optional[str], field_name: str, order_id: str) -> List[Any]:
    try:
        return _load_json_list(raw, field_name)
    except MalformedPayloadError as e:
        logger.warning(f"[STOREFRONT] order {order_id}: {e}; treating as empty")
        return []


def _clean_numbers(values: Any) -> Tuple[str, ...]:
    if isinstance(values, (str, int)):
        values = [values]
    if not isinstance(values, list):
        return ()
    cleaned = (normalize_identifier(v) for v in values if isinstance(v, (str, int)))
    return tuple(v for v in cleaned if v)


def parse_fulfillment(raw: Any) -> Optional[Fulfillment]:
    if not isinstance(raw, dict):
        return None
    numbers = _clean_numbers(raw.get("tracking_numbers"))
    if not numbers:
        numbers = _clean_numbers(raw.get("tracking_number"))
    return Fulfillment(
        tracking_company=normalize_identifier(raw.get("tracking_company")),
        tracking_numbers=numbers,
    )


def to_record(row: StorefrontOrder) -> StorefrontRecord:
    order_id = row.storefront_order_id
    fulfillments = tuple(
        f for f in (parse_fulfillment(item) for item in _safe_json_list(row.fulfillments, "fulfillments", order_id))
        if f is not None
    )
    line_items = tuple(
        item for item in _safe_json_list(row.line_items, "line_items", order_id)
        if isinstance(item, dict)
    )
    return StorefrontRecord(
        storefront_order_id=order_id,
        brand_id=row.brand_id,
        order_number=normalize_identifier(row.order_number),
        order_name=normalize_identifier(row.order_name),
        customer_name=row.customer_name,
        phone=row.phone,
        shipping_address=row.shipping_address,
        shipping_city=row.shipping_city,
        created_at=row.created_at,
        financial_status=(row.financial_status or "").strip().lower() or None,
        fulfillment_status=row.fulfillment_status,
        total_price=row.total_price or 0.0,
        courier_partner=row.courier_partner,
        line_items=line_items,
        fulfillments=fulfillments,
        tracking_numbers=_clean_numbers(_safe_json_list(row.tracking_numbers, "tracking_numbers", order_id)),
    )


def query_storefront_orders(db: Session, brand_id: str, date_range: Optional[DateRange] = None) -> List[StorefrontOrder]:
    try:
        query = db.query(StorefrontOrder).filter(StorefrontOrder.brand_id == brand_id)
        if date_range is not None:
            start, end = date_range.bounds()
            if start is not None:
                query = query.filter(StorefrontOrder.created_at >= start)
            if end is not None:
                query = query.filter(StorefrontOrder.created_at < end)
        return query.order_by(
            StorefrontOrder.created_at.desc().nulls_last(),
            StorefrontOrder.storefront_order_id,
        ).all()
    except SQLAlchemyError as e:
        logger.error(f"[STOREFRONT] query failed for brand={brand_id}: {e}")
        raise StorageError(f"Storefront query failed: {str(e)}") from e


def load_records(db: Session, brand_id: str) -> List[StorefrontRecord]:
    """All storefront orders of a brand as typed records."""
    return [to_record(row) for row in query_storefront_orders(db, brand_id)]


def owned_by_other_brand(db: Session, order_ids: Sequence[str], brand_id: str) -> Set[str]:
    """Storefront order ids among these stored under a different brand."""
    if not order_ids:
        return set()
    try:
        rows = db.query(StorefrontOrder.storefront_order_id).filter(
            StorefrontOrder.storefront_order_id.in_(list(order_ids)),
            StorefrontOrder.brand_id != brand_id,
        ).all()
    except SQLAlchemyError as e:
        raise StorageError(f"Storefront ownership check failed: {str(e)}") from e
    return {row.storefront_order_id for row in rows}


def upsert_storefront_orders(db: Session, rows: List[Dict[str, Any]], chunk_size: Optional[int] = None) -> UpsertOutcome:
    if not rows:
        return UpsertOutcome()
    outcome = upsert_rows(
        db, StorefrontOrder.__table__, rows,
        key_columns=STOREFRONT_KEY_COLUMNS,
        pinned_columns=STOREFRONT_PINNED_COLUMNS,
        chunk_size=chunk_size,
        label="STOREFRONT",
        guard_column="brand_id",
    )
    db.expire_all()
    logger.info(f"[STOREFRONT] upserted={outcome.written} failed_chunks={len(outcome.failed_chunks)}")
    return outcome
