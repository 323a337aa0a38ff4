from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from datetime import datetime

class OrderResponse(BaseModel):
    id: int
    tracking_number: str
    courier: str
    brand_id: str
    order_ref_number: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    delivery_address: Optional[str] = None
    city_name: Optional[str] = None
    order_detail: Optional[str] = None
    order_type: Optional[str] = None
    order_amount: float
    invoice_payment: float
    transaction_fee: float
    transaction_tax: float
    sales_withholding_tax: float
    upfront_payment: float
    net_amount: float
    order_status: Optional[str] = None
    transaction_status: Optional[str] = None
    last_status: Optional[str] = None
    last_status_time: Optional[datetime] = None
    order_date: datetime
    transaction_date: Optional[datetime] = None
    last_fetched_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class ChangeSummaryResponse(BaseModel):
    new: int = 0
    delivered: int = 0
    returned: int = 0
    status_changed: int = 0
    unchanged: int = 0
    conflicts: int = 0
    skipped: int = 0
    failed_items: int = 0
    failed_chunks: int = 0

    class Config:
        from_attributes = True

class OrderSyncResponse(BaseModel):
    source: str
    count: int
    records: List[OrderResponse]
    change_summary: Optional[ChangeSummaryResponse] = None
    warning: Optional[str] = None
    error_kind: Optional[str] = None

class ItemFailureResponse(BaseModel):
    key: str
    error: str

    class Config:
        from_attributes = True

class TrackingRefreshRequest(BaseModel):
    """Tracking numbers to refresh; omit to refresh every stored order of the brand."""
    tracking_numbers: Optional[List[str]] = None
    include_payment_status: bool = False

class TrackingRefreshResponse(BaseModel):
    requested: int
    updated: int
    statuses: List[Dict[str, Any]]
    payment_statuses: List[Dict[str, Any]]
    failures: List[ItemFailureResponse]

class StorefrontOrderResponse(BaseModel):
    id: int
    storefront_order_id: str
    brand_id: str
    order_number: Optional[str] = None
    order_name: Optional[str] = None
    email: Optional[str] = None
    customer_name: Optional[str] = None
    phone: Optional[str] = None
    shipping_address: Optional[str] = None
    shipping_city: Optional[str] = None
    created_at: Optional[datetime] = None
    financial_status: Optional[str] = None
    fulfillment_status: Optional[str] = None
    total_price: float
    currency: str
    line_items: Optional[str] = None
    fulfillments: Optional[str] = None
    tracking_numbers: Optional[str] = None
    courier_partner: Optional[str] = None
    last_fetched_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class StorefrontSyncResponse(BaseModel):
    source: str
    count: int
    orders: List[StorefrontOrderResponse]
    upserted: int = 0
    unchanged: int = 0
    conflicts: int = 0
    failed_chunks: int = 0
    warning: Optional[str] = None
    error_kind: Optional[str] = None

class DiscrepancyResponse(BaseModel):
    tracking_number: str
    courier: str
    order_ref: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    city: Optional[str] = None
    courier_amount: float
    courier_status: Optional[str] = None
    storefront_status: Optional[str] = None
    storefront_fulfillment: Optional[str] = None
    order_date: Optional[datetime] = None
    order_detail: Optional[str] = None
    has_match: bool
    reason: str
    matched_by: Optional[str] = None
    storefront_order_id: Optional[str] = None

    class Config:
        from_attributes = True

class DiscrepancySummary(BaseModel):
    total: int
    per_courier_counts: Dict[str, int]
    total_amount_at_risk: float

class DiscrepancyListResponse(BaseModel):
    discrepancies: List[DiscrepancyResponse]
    summary: DiscrepancySummary

class AlertResponse(BaseModel):
    id: str
    type: str
    severity: str
    title: str
    description: str
    details: Dict[str, Any]
    created_at: datetime

    class Config:
        from_attributes = True

class AlertThresholdsResponse(BaseModel):
    transit_days: int
    return_rate_pct: float
    delivery_rate_pct: float

    class Config:
        from_attributes = True

class AlertListResponse(BaseModel):
    alerts: List[AlertResponse]
    summary: Dict[str, Any]
    thresholds_used: AlertThresholdsResponse

class FinanceSummaryResponse(BaseModel):
    couriers: Dict[str, Any]
    storefront: Dict[str, Any]
