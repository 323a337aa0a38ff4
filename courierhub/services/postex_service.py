"""
PostEx Service - Client for the PostEx merchant integration API.

Provides functions to:
- Fetch all orders for a dispatch-date window (`get-all-order`)
- Map PostEx order records to RawShipment
- Bulk-track shipments and read per-shipment payment status
"""
import logging
from datetime import date, timedelta
from typing import Any, Dict, List, Optional

from courierhub.config import settings
from courierhub.models.enums import Courier
from courierhub.services import http_client
from courierhub.services.courier_strategy import CourierStrategy
from courierhub.services.courier_types import (
    CourierCredentials, DateRange, FetchContext, FetchResult, ItemFailure, RawShipment
)
from courierhub.services.errors import UpstreamAuthError, UpstreamNotFound
from courierhub.utils.normalization import (
    first_non_blank, normalize_identifier, parse_amount, parse_datetime, strip_auth_scheme
)

logger = logging.getLogger(__name__)

SOURCE = "PostEx"
DEFAULT_LOOKBACK_DAYS = 90


def _build_postex_headers(credentials: CourierCredentials) -> Dict[str, str]:
    token = strip_auth_scheme(credentials.token)
    if not token:
        raise UpstreamAuthError("PostEx token missing", 401)
    return {
        "token": token,
        "Content-Type": "application/json",
    }


def _unwrap_dist(data: Any) -> List[Dict[str, Any]]:
    # PostEx wraps payloads in {"dist": [...]}; some endpoints return the bare list
    if isinstance(data, dict):
        data = data.get("dist", [])
    if not isinstance(data, list):
        return []
    return [item for item in data if isinstance(item, dict)]


def fetch_postex_orders(credentials: CourierCredentials, date_range: DateRange) -> List[Dict[str, Any]]:
    """
    Fetch raw PostEx orders whose dispatch date falls in the window.

    An open window defaults to the last DEFAULT_LOOKBACK_DAYS days.

    Raises:
        UpstreamAuthError / UpstreamTransientError / MalformedPayloadError
    """
    end = date_range.end or date.today()
    start = date_range.start or (end - timedelta(days=DEFAULT_LOOKBACK_DAYS))

    response = http_client.send(
        "GET",
        f"{settings.POSTEX_API_BASE_URL.rstrip('/')}/v1/get-all-order",
        SOURCE,
        headers=_build_postex_headers(credentials),
        params={
            "orderStatusId": 0,
            "startDate": start.isoformat(),
            "endDate": end.isoformat(),
        },
        proxies=credentials.proxies,
    )
    orders = _unwrap_dist(http_client.parse_json(response, SOURCE))
    logger.info(f"[POSTEX] fetched={len(orders)} window={start.isoformat()}..{end.isoformat()}")
    return orders


def map_postex_order(raw_order: Dict[str, Any]) -> Optional[RawShipment]:
    """Map one PostEx order to RawShipment. Returns None when it has no tracking number."""
    tracking_number = normalize_identifier(raw_order.get("trackingNumber"))
    if not tracking_number:
        return None

    return RawShipment(
        tracking_number=tracking_number,
        order_ref_number=normalize_identifier(raw_order.get("orderRefNumber")),
        customer_name=first_non_blank(raw_order.get("customerName")),
        customer_phone=first_non_blank(raw_order.get("customerPhone")),
        delivery_address=first_non_blank(raw_order.get("deliveryAddress")),
        city_name=first_non_blank(raw_order.get("cityName")),
        order_detail=first_non_blank(raw_order.get("orderDetail")),
        order_type=first_non_blank(raw_order.get("orderType")) or "COD",
        order_amount=parse_amount(raw_order.get("orderAmount")),
        invoice_payment=parse_amount(raw_order.get("invoicePayment")),
        upfront_payment=parse_amount(raw_order.get("upfrontPayment")),
        transaction_fee=parse_amount(raw_order.get("transactionFee")),
        transaction_tax=parse_amount(raw_order.get("transactionTax")),
        reversal_fee=parse_amount(raw_order.get("reversalFee")),
        reversal_tax=parse_amount(raw_order.get("reversalTax")),
        order_status=first_non_blank(raw_order.get("orderStatus")),
        transaction_status=first_non_blank(raw_order.get("transactionStatus")),
        last_status=first_non_blank(raw_order.get("lastStatus")),
        last_status_time=parse_datetime(raw_order.get("lastStatusTime")),
        order_date=parse_datetime(raw_order.get("orderDate") or raw_order.get("orderPickupDate")),
        transaction_date=parse_datetime(raw_order.get("transactionDate")),
    )


def track_bulk(credentials: CourierCredentials, tracking_numbers: List[str]) -> List[Dict[str, Any]]:
    """Fetch tracking detail for a batch of shipments in one call."""
    response = http_client.send(
        "POST",
        f"{settings.POSTEX_API_BASE_URL.rstrip('/')}/v1/track-bulk-order",
        SOURCE,
        headers=_build_postex_headers(credentials),
        json_body={"trackingNumber": tracking_numbers},
        proxies=credentials.proxies,
    )
    return _unwrap_dist(http_client.parse_json(response, SOURCE))


def fetch_payment_status(credentials: CourierCredentials, tracking_number: str) -> Dict[str, Any]:
    """Payment status for one shipment; a 404 becomes a soft "Not Found" result."""
    try:
        response = http_client.send(
            "GET",
            f"{settings.POSTEX_API_BASE_URL.rstrip('/')}/v1/payment-status/{tracking_number}",
            SOURCE,
            headers=_build_postex_headers(credentials),
            proxies=credentials.proxies,
        )
    except UpstreamNotFound:
        return {"trackingNumber": tracking_number, "status": "Not Found"}
    data = http_client.parse_json(response, SOURCE)
    if isinstance(data, dict) and isinstance(data.get("dist"), dict):
        data = data["dist"]
    return data if isinstance(data, dict) else {"trackingNumber": tracking_number, "data": data}


class PostExStrategy(CourierStrategy):
    courier = Courier.POSTEX

    def fetch(self, context: FetchContext) -> FetchResult:
        raw_orders = fetch_postex_orders(context.credentials, context.date_range)
        shipments: List[RawShipment] = []
        failures: List[ItemFailure] = []
        for index, raw_order in enumerate(raw_orders):
            shipment = map_postex_order(raw_order)
            if shipment is None:
                failures.append(ItemFailure(key=f"row:{index}", error="missing trackingNumber"))
                continue
            shipments.append(shipment)
        if failures:
            logger.warning(f"[POSTEX] skipped {len(failures)} records without tracking numbers")
        return FetchResult(shipments=shipments, raw_count=len(raw_orders), failures=failures)
