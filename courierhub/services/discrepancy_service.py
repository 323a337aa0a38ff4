"""
Discrepancy reconciler.

Joins courier orders classified as returned against storefront orders of the
same brand and reports returns the storefront never refunded or voided.

A courier order is matched by the first key that hits:

1. order_ref_number == storefront order_number
2. order_ref_number == storefront order_name
3. order_ref_number == storefront order_name with a leading "#" stripped or added
4. tracking number in the storefront's tracking list or any fulfillment's

All four lookups are dict indexes built once per pass over the brand's
storefront orders. Reads only from the stores, so StorageError is the only
failure mode.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy.orm import Session

from courierhub.models.core import Order
from courierhub.models.enums import StatusBucket, parse_courier
from courierhub.services import order_store, storefront_store
from courierhub.services.courier_types import DateRange
from courierhub.services.status_mapping import classify_status
from courierhub.services.storefront_store import StorefrontRecord

logger = logging.getLogger(__name__)

REFUNDED_STATUSES = frozenset({"refunded", "voided", "partially_refunded"})

REASON_NO_MATCH = "no match"
REASON_NOT_REFUNDED = "courier returned but storefront not refunded"

MATCH_ORDER_NUMBER = "order_number"
MATCH_ORDER_NAME = "order_name"
MATCH_ORDER_NAME_HASH = "order_name_hash"
MATCH_TRACKING = "tracking_number"


@dataclass
class Discrepancy:
    tracking_number: str
    courier: str
    order_ref: Optional[str]
    customer_name: Optional[str]
    customer_phone: Optional[str]
    city: Optional[str]
    courier_amount: float
    courier_status: Optional[str]
    storefront_status: Optional[str]
    storefront_fulfillment: Optional[str]
    order_date: Optional[datetime]
    order_detail: Optional[str]
    has_match: bool
    reason: str
    matched_by: Optional[str] = None
    storefront_order_id: Optional[str] = None


@dataclass
class DiscrepancyReport:
    discrepancies: List[Discrepancy] = field(default_factory=list)
    total: int = 0
    per_courier_counts: Dict[str, int] = field(default_factory=dict)
    total_amount_at_risk: float = 0.0


class StorefrontIndex:
    """Lookup indexes over one brand's storefront orders. First record seen wins a key."""

    def __init__(self, records: List[StorefrontRecord]):
        self.by_number: Dict[str, StorefrontRecord] = {}
        self.by_name: Dict[str, StorefrontRecord] = {}
        self.by_name_variant: Dict[str, StorefrontRecord] = {}
        self.by_tracking: Dict[str, StorefrontRecord] = {}

        for record in records:
            if record.order_number:
                self.by_number.setdefault(record.order_number, record)
            if record.order_name:
                name = record.order_name
                self.by_name.setdefault(name, record)
                variant = name[1:] if name.startswith("#") else f"#{name}"
                if variant:
                    self.by_name_variant.setdefault(variant, record)
            for number in record.all_tracking_numbers():
                self.by_tracking.setdefault(number, record)

    def match(self, order: Order) -> Tuple[Optional[StorefrontRecord], Optional[str]]:
        ref = (order.order_ref_number or "").strip()
        if ref:
            for index, key_name in (
                (self.by_number, MATCH_ORDER_NUMBER),
                (self.by_name, MATCH_ORDER_NAME),
                (self.by_name_variant, MATCH_ORDER_NAME_HASH),
            ):
                record = index.get(ref)
                if record is not None:
                    return record, key_name
        record = self.by_tracking.get(order.tracking_number)
        if record is not None:
            return record, MATCH_TRACKING
        return None, None


def is_returned(order: Order) -> bool:
    status = order.transaction_status or order.order_status or order.last_status
    return classify_status(status, order.courier) == StatusBucket.RETURNED


def _discrepancy(order: Order, record: Optional[StorefrontRecord], matched_by: Optional[str]) -> Discrepancy:
    return Discrepancy(
        tracking_number=order.tracking_number,
        courier=order.courier,
        order_ref=order.order_ref_number,
        customer_name=order.customer_name,
        customer_phone=order.customer_phone,
        city=order.city_name,
        courier_amount=order.invoice_payment or 0.0,
        courier_status=order.transaction_status or order.order_status,
        storefront_status=record.financial_status if record else None,
        storefront_fulfillment=record.fulfillment_status if record else None,
        order_date=order.order_date,
        order_detail=order.order_detail,
        has_match=record is not None,
        reason=REASON_NOT_REFUNDED if record is not None else REASON_NO_MATCH,
        matched_by=matched_by,
        storefront_order_id=record.storefront_order_id if record else None,
    )


def reconcile(orders: List[Order], records: List[StorefrontRecord]) -> DiscrepancyReport:
    """Pure matching + classification over already-loaded rows."""
    index = StorefrontIndex(records)
    found: List[Discrepancy] = []
    for order in orders:
        if not is_returned(order):
            continue
        record, matched_by = index.match(order)
        if record is not None and (record.financial_status or "") in REFUNDED_STATUSES:
            continue
        found.append(_discrepancy(order, record, matched_by))

    found.sort(key=lambda d: (d.courier, d.tracking_number))

    per_courier: Dict[str, int] = {}
    for item in found:
        per_courier[item.courier] = per_courier.get(item.courier, 0) + 1

    return DiscrepancyReport(
        discrepancies=found,
        total=len(found),
        per_courier_counts=per_courier,
        total_amount_at_risk=round(sum(d.courier_amount for d in found), 2),
    )


def find_discrepancies(
    db: Session,
    brand_id: str,
    courier: Optional[str] = None,
    date_range: Optional[DateRange] = None,
) -> DiscrepancyReport:
    """
    Returned courier orders whose storefront order is missing or not refunded.

    Args:
        courier: Courier name/value, or None / "all" for every courier

    Raises:
        StorageError: If either store cannot be read
    """
    courier_filter = None
    if courier and courier.lower() != "all":
        resolved = parse_courier(courier)
        courier_filter = resolved.value if resolved else courier

    orders = order_store.query_orders(db, brand_id, courier_filter, date_range)
    records = storefront_store.load_records(db, brand_id)
    report = reconcile(orders, records)
    logger.info(
        f"[DISCREPANCIES] brand={brand_id} courier={courier_filter or 'all'} "
        f"orders={len(orders)} storefront={len(records)} discrepancies={report.total}"
    )
    return report
