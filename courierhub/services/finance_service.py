"""
Finance summary over stored orders.

Per courier: totals, plus month -> day breakdowns keyed by order_date.
Storefront revenue is split by the courier that shipped it; refunded,
voided and unfulfilled orders count as cancelled/pending.
"""
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from courierhub.models.core import Order
from courierhub.models.enums import Courier, StatusBucket
from courierhub.services import order_store, storefront_store
from courierhub.services.courier_types import DateRange
from courierhub.services.status_mapping import classify_status
from courierhub.services.storefront_store import StorefrontRecord

logger = logging.getLogger(__name__)

UNKNOWN_PERIOD = "Unknown"
CANCELLED_PENDING = "cancelled_pending"


@dataclass
class FinanceTotals:
    total_orders: int = 0
    delivered_orders: int = 0
    returned_orders: int = 0
    gross_amount: float = 0.0
    fees: float = 0.0
    taxes: float = 0.0
    withholding_tax: float = 0.0
    upfront_payments: float = 0.0
    net_amount: float = 0.0

    def add(self, order: Order, bucket: StatusBucket) -> None:
        self.total_orders += 1
        if bucket == StatusBucket.DELIVERED:
            self.delivered_orders += 1
        elif bucket == StatusBucket.RETURNED:
            self.returned_orders += 1
        self.gross_amount += order.invoice_payment or 0.0
        self.fees += order.transaction_fee or 0.0
        self.taxes += order.transaction_tax or 0.0
        self.withholding_tax += order.sales_withholding_tax or 0.0
        self.upfront_payments += order.upfront_payment or 0.0
        self.net_amount += order.net_amount or 0.0

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, float):
                data[key] = round(value, 2)
        return data


@dataclass
class _Month:
    totals: FinanceTotals = field(default_factory=FinanceTotals)
    days: Dict[str, FinanceTotals] = field(default_factory=dict)


def _month_key(order: Order) -> str:
    return order.order_date.strftime("%Y-%m") if order.order_date else UNKNOWN_PERIOD


def _day_key(order: Order) -> str:
    return order.order_date.strftime("%Y-%m-%d") if order.order_date else UNKNOWN_PERIOD


def courier_breakdown(orders: List[Order]) -> Dict[str, Dict[str, Any]]:
    totals: Dict[str, FinanceTotals] = {}
    months: Dict[str, Dict[str, _Month]] = {}

    for order in orders:
        bucket = classify_status(order.transaction_status or order.order_status or order.last_status, order.courier)
        totals.setdefault(order.courier, FinanceTotals()).add(order, bucket)
        month = months.setdefault(order.courier, {}).setdefault(_month_key(order), _Month())
        month.totals.add(order, bucket)
        month.days.setdefault(_day_key(order), FinanceTotals()).add(order, bucket)

    result: Dict[str, Dict[str, Any]] = {}
    for courier in sorted(totals):
        monthly = []
        for month_key in sorted(months[courier], reverse=True):
            month = months[courier][month_key]
            monthly.append({
                "month": month_key,
                **month.totals.as_dict(),
                "days": [
                    {"date": day_key, **month.days[day_key].as_dict()}
                    for day_key in sorted(month.days, reverse=True)
                ],
            })
        result[courier] = {"totals": totals[courier].as_dict(), "monthly": monthly}
    return result


def storefront_channel(record: StorefrontRecord) -> str:
    financial = (record.financial_status or "").lower()
    fulfillment = (record.fulfillment_status or "").lower()
    if "refunded" in financial or "voided" in financial or fulfillment in ("", "unfulfilled", "null"):
        return CANCELLED_PENDING
    for courier in Courier:
        needle = courier.value.lower()
        if needle in (record.courier_partner or "").lower():
            return courier.value
        if any(f.carrier_mentions(needle) for f in record.fulfillments):
            return courier.value
    return CANCELLED_PENDING


def storefront_revenue(records: List[StorefrontRecord]) -> Dict[str, Any]:
    by_channel = {courier.value: 0.0 for courier in Courier}
    by_channel[CANCELLED_PENDING] = 0.0
    for record in records:
        by_channel[storefront_channel(record)] += record.total_price or 0.0
    return {
        "order_count": len(records),
        "total_revenue": round(sum(r.total_price or 0.0 for r in records), 2),
        "by_channel": {key: round(value, 2) for key, value in by_channel.items()},
    }


def finance_summary(db: Session, brand_id: str, date_range: Optional[DateRange] = None) -> Dict[str, Any]:
    """
    Raises:
        StorageError: If either store cannot be read
    """
    orders = order_store.query_orders(db, brand_id, date_range=date_range)
    records = storefront_store.load_records(db, brand_id)
    if date_range is not None:
        records = [r for r in records if date_range.contains(r.created_at)]
    logger.info(f"[FINANCE] brand={brand_id} orders={len(orders)} storefront={len(records)}")
    return {
        "couriers": courier_breakdown(orders),
        "storefront": storefront_revenue(records),
    }
