from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, List, Optional, Tuple

from courierhub.models.enums import StatusBucket


@dataclass
class RawShipment:
    """One upstream shipment record, already mapped out of the courier's wire shape."""
    tracking_number: str
    order_ref_number: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    delivery_address: Optional[str] = None
    city_name: Optional[str] = None
    order_detail: Optional[str] = None
    order_type: Optional[str] = None

    order_amount: float = 0.0
    invoice_payment: float = 0.0
    upfront_payment: float = 0.0

    # PostEx settlement fields
    transaction_fee: float = 0.0
    transaction_tax: float = 0.0
    reversal_fee: float = 0.0
    reversal_tax: float = 0.0

    # Tranzo tariff fields
    delivery_fee: float = 0.0
    fuel_fee: float = 0.0
    cash_handling_fee: float = 0.0
    delivery_tax: float = 0.0

    order_status: Optional[str] = None
    transaction_status: Optional[str] = None
    last_status: Optional[str] = None
    last_status_time: Optional[datetime] = None

    order_date: Optional[datetime] = None
    transaction_date: Optional[datetime] = None

    @property
    def authoritative_status(self) -> str:
        return self.transaction_status or self.order_status or self.last_status or ""


@dataclass(frozen=True)
class FinancialFields:
    bucket: StatusBucket
    transaction_fee: float
    transaction_tax: float
    sales_withholding_tax: float
    net_amount: float


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar-date window over Order.order_date. Either side may be open."""
    start: Optional[date] = None
    end: Optional[date] = None

    def bounds(self) -> Tuple[Optional[datetime], Optional[datetime]]:
        """Return (start inclusive, end exclusive) datetimes."""
        start_dt = datetime.combine(self.start, time.min) if self.start else None
        end_dt = datetime.combine(self.end + timedelta(days=1), time.min) if self.end else None
        return start_dt, end_dt

    def contains(self, value: Optional[datetime]) -> bool:
        if value is None:
            return self.start is None and self.end is None
        start_dt, end_dt = self.bounds()
        if start_dt and value < start_dt:
            return False
        if end_dt and value >= end_dt:
            return False
        return True


@dataclass(frozen=True)
class CourierCredentials:
    token: Optional[str] = None
    proxy: Optional[str] = None

    @property
    def proxies(self) -> Optional[dict]:
        if not self.proxy:
            return None
        return {"http": self.proxy, "https": self.proxy}


@dataclass
class FetchContext:
    db: Any
    brand_id: str
    date_range: DateRange
    credentials: CourierCredentials


@dataclass
class ItemFailure:
    key: str
    error: str


@dataclass
class FetchResult:
    """Result of a live fetch, with per-item failures captured rather than raised."""
    shipments: List[RawShipment]
    raw_count: int = 0
    failures: List[ItemFailure] = field(default_factory=list)
