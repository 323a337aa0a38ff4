"""
Tranzo Service - Client for the Tranzo merchant API.

Tranzo returns a paginated `{count, results}` list of snake_case order
records with no settlement fields. Fees come from a per-city tariff unless
the record carries explicit fee fields.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from courierhub.config import settings
from courierhub.models.enums import Courier, StatusBucket
from courierhub.services import http_client
from courierhub.services.courier_strategy import CourierStrategy
from courierhub.services.courier_types import (
    CourierCredentials, FetchContext, FetchResult, ItemFailure, RawShipment
)
from courierhub.services.errors import MalformedPayloadError, UpstreamAuthError, UpstreamTransientError
from courierhub.services.status_mapping import classify_status
from courierhub.utils.normalization import (
    first_non_blank, normalize_identifier, parse_amount, parse_datetime, strip_auth_scheme
)

logger = logging.getLogger(__name__)

SOURCE = "Tranzo"

# (delivery fee, delivery tax, fuel surcharge) per destination city
CITY_TARIFFS: Dict[str, Tuple[float, float, float]] = {
    "lahore": (90.0, 13.44, 4.0),
    "karachi": (140.0, 21.84, 6.5),
}
DEFAULT_TARIFF: Tuple[float, float, float] = (130.0, 20.16, 0.0)

_FEE_FIELDS = ("delivery_fee", "delivery_tax", "fuel_fee", "fuel_surcharge", "cash_handling_fee")


def _build_tranzo_headers(credentials: CourierCredentials) -> Dict[str, str]:
    token = strip_auth_scheme(credentials.token)
    if not token:
        raise UpstreamAuthError("Tranzo token missing", 401)
    return {
        "Authorization": token,
        "Content-Type": "application/json",
    }


def _extract_results(data: Any) -> List[Dict[str, Any]]:
    if isinstance(data, list):
        results = data
    elif isinstance(data, dict):
        results = data.get("results") or data.get("data") or []
    else:
        results = []
    if not isinstance(results, list):
        raise MalformedPayloadError(f"Tranzo results is not a list: {type(results).__name__}")
    return [item for item in results if isinstance(item, dict)]


def _parse_count(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def fetch_tranzo_orders(credentials: CourierCredentials) -> List[Dict[str, Any]]:
    """
    Fetch every Tranzo order visible to the token.

    The first page reports the total `count`; when it holds fewer results
    than that, the list is re-requested once with `limit=count`.
    """
    url = f"{settings.TRANZO_API_BASE_URL.rstrip('/')}/status-orders-list/"
    headers = _build_tranzo_headers(credentials)

    response = http_client.send("GET", url, SOURCE, headers=headers, proxies=credentials.proxies)
    data = http_client.parse_json(response, SOURCE)
    results = _extract_results(data)

    total_count = _parse_count(data.get("count") if isinstance(data, dict) else None)
    if total_count > len(results):
        logger.info(f"[TRANZO] paginated: total={total_count} first_page={len(results)}, refetching all")
        try:
            full_response = http_client.send(
                "GET", url, SOURCE,
                headers=headers,
                params={"page": 1, "limit": total_count},
                proxies=credentials.proxies,
            )
            results = _extract_results(http_client.parse_json(full_response, SOURCE))
        except UpstreamTransientError as e:
            # Keep the first page rather than losing the whole fetch
            logger.warning(f"[TRANZO] full refetch failed, keeping first page: {e}")

    logger.info(f"[TRANZO] fetched={len(results)}")
    return results


def tariff_for_city(city: Optional[str]) -> Tuple[float, float, float]:
    city_value = (city or "").lower()
    for name, tariff in CITY_TARIFFS.items():
        if name in city_value:
            return tariff
    return DEFAULT_TARIFF


def _has_explicit_fees(raw_order: Dict[str, Any]) -> bool:
    return any(raw_order.get(name) not in (None, "") for name in _FEE_FIELDS)


def map_tranzo_order(raw_order: Dict[str, Any]) -> Optional[RawShipment]:
    """Map one Tranzo record to RawShipment, filling fees from the city tariff."""
    tracking_number = normalize_identifier(raw_order.get("tracking_number"))
    if not tracking_number:
        return None

    status = first_non_blank(raw_order.get("order_status")) or "Unknown"
    city = first_non_blank(raw_order.get("destination_city_name"), raw_order.get("city_name"))
    amount = parse_amount(raw_order.get("cod_amount"))

    if _has_explicit_fees(raw_order):
        delivery_fee = parse_amount(raw_order.get("delivery_fee"))
        delivery_tax = parse_amount(raw_order.get("delivery_tax"))
        fuel_fee = parse_amount(raw_order.get("fuel_fee", raw_order.get("fuel_surcharge")))
        cash_handling_fee = parse_amount(raw_order.get("cash_handling_fee"))
    elif classify_status(status, Courier.TRANZO) == StatusBucket.CANCELLED:
        delivery_fee = delivery_tax = fuel_fee = cash_handling_fee = 0.0
    else:
        delivery_fee, delivery_tax, fuel_fee = tariff_for_city(city)
        cash_handling_fee = 0.0

    created_at = parse_datetime(raw_order.get("created_at"))

    return RawShipment(
        tracking_number=tracking_number,
        order_ref_number=normalize_identifier(raw_order.get("reference_number")),
        customer_name=first_non_blank(raw_order.get("customer_name")) or "N/A",
        customer_phone=first_non_blank(raw_order.get("customer_phone")),
        delivery_address=first_non_blank(raw_order.get("delivery_address")),
        city_name=city,
        order_detail=first_non_blank(raw_order.get("order_details")),
        order_type="COD",
        order_amount=amount,
        invoice_payment=amount,
        delivery_fee=delivery_fee,
        delivery_tax=delivery_tax,
        fuel_fee=fuel_fee,
        cash_handling_fee=cash_handling_fee,
        order_status=status,
        transaction_status=status,
        order_date=parse_datetime(raw_order.get("order_date")) or created_at,
        transaction_date=parse_datetime(raw_order.get("updated_at")) or created_at,
    )


class TranzoStrategy(CourierStrategy):
    courier = Courier.TRANZO

    def fetch(self, context: FetchContext) -> FetchResult:
        raw_orders = fetch_tranzo_orders(context.credentials)
        shipments: List[RawShipment] = []
        failures: List[ItemFailure] = []
        for index, raw_order in enumerate(raw_orders):
            shipment = map_tranzo_order(raw_order)
            if shipment is None:
                failures.append(ItemFailure(key=f"row:{index}", error="missing tracking_number"))
                continue
            shipments.append(shipment)
        if failures:
            logger.warning(f"[TRANZO] skipped {len(failures)} records without tracking numbers")
        return FetchResult(shipments=shipments, raw_count=len(raw_orders), failures=failures)
