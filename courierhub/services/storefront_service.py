"""
Storefront Service - Client and sync path for the storefront Admin REST API.

Provides functions to:
- Exchange client credentials for an access token (cached per tenant)
- Fetch orders for a created-at window with Link-header pagination
- Map storefront orders to storefront_orders rows
- Sync storefront orders cache-first with fallback, like the courier sync
"""
import json
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from courierhub.config import settings
from courierhub.models.core import StorefrontOrder
from courierhub.models.enums import SyncSource
from courierhub.services import http_client, storefront_store
from courierhub.services.courier_types import DateRange
from courierhub.services.errors import MalformedPayloadError, StorageError, UpstreamAuthError, UpstreamError
from courierhub.services.token_cache import TokenCache, token_cache
from courierhub.utils.normalization import first_non_blank, normalize_identifier, parse_amount, parse_datetime

logger = logging.getLogger(__name__)

SOURCE = "Storefront"
PAGE_LIMIT = 250

_STOREFRONT_CONTENT_COLUMNS = tuple(
    column.name for column in StorefrontOrder.__table__.columns
    if column.name not in ("id", "last_fetched_at")
)


@dataclass(frozen=True)
class StorefrontCredentials:
    store: str
    access_token: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None

    @property
    def has_direct_token(self) -> bool:
        return bool(self.access_token)

    @property
    def has_client_credentials(self) -> bool:
        return bool(self.client_id and self.client_secret)


@dataclass
class StorefrontSyncResult:
    orders: List[StorefrontOrder]
    source: SyncSource
    warning: Optional[str] = None
    error_kind: Optional[str] = None
    upserted: int = 0
    unchanged: int = 0
    conflicts: int = 0
    failed_chunks: int = 0


def normalize_store_domain(store: str) -> str:
    """
    "https://MyStore.myshopify.com/" -> "mystore.myshopify.com"
    "mystore" -> "mystore.myshopify.com"
    """
    domain = (store or "").strip().lower()
    for prefix in ("https://", "http://"):
        if domain.startswith(prefix):
            domain = domain[len(prefix):]
    domain = domain.rstrip("/")
    if ".myshopify.com" not in domain:
        domain = f"{domain}.myshopify.com"
    return domain


def exchange_client_credentials(store_domain: str, client_id: str, client_secret: str) -> Tuple[str, Optional[int]]:
    response = http_client.send(
        "POST",
        f"https://{store_domain}/admin/oauth/access_token",
        SOURCE,
        headers={
            "Content-Type": "application/x-www-form-urlencoded",
            "Accept": "application/json",
        },
        data={
            "grant_type": "client_credentials",
            "client_id": client_id,
            "client_secret": client_secret,
        },
    )
    data = http_client.parse_json(response, SOURCE)
    token = data.get("access_token") if isinstance(data, dict) else None
    if not token:
        raise UpstreamAuthError(f"{SOURCE} returned an empty access token", response.status_code)
    return token, data.get("expires_in")


def get_access_token(
    brand_id: str,
    credentials: StorefrontCredentials,
    cache: TokenCache = token_cache,
    force_refresh: bool = False,
) -> str:
    """Direct token if configured, else a cached (or freshly exchanged) client-credentials token."""
    if credentials.has_direct_token:
        return credentials.access_token
    if not credentials.has_client_credentials:
        raise UpstreamAuthError(f"No {SOURCE} authentication configured", 401)

    store_domain = normalize_store_domain(credentials.store)
    key = TokenCache.key(brand_id, store_domain, credentials.client_id)
    if not force_refresh:
        cached = cache.get(key)
        if cached:
            return cached

    logger.info(f"[STOREFRONT] requesting access token for {store_domain}")
    token, expires_in = exchange_client_credentials(store_domain, credentials.client_id, credentials.client_secret)
    cache.put(key, token, expires_in)
    return token


def fetch_storefront_orders(
    brand_id: str,
    credentials: StorefrontCredentials,
    date_range: DateRange,
    cache: TokenCache = token_cache,
) -> List[Dict[str, Any]]:
    """
    Fetch every order created in the window, following `rel="next"` links.

    A 401 with client credentials triggers one forced token refresh and a retry
    of the same page.
    """
    if not credentials.store:
        raise UpstreamAuthError(f"{SOURCE} store domain not configured", 401)

    store_domain = normalize_store_domain(credentials.store)
    access_token = get_access_token(brand_id, credentials, cache)
    retried_auth = False

    url: Optional[str] = f"https://{store_domain}/admin/api/{settings.STOREFRONT_API_VERSION}/orders.json"
    params: Optional[Dict[str, Any]] = {"status": "any", "limit": PAGE_LIMIT}
    start, end = date_range.bounds()
    if start is not None:
        params["created_at_min"] = start.isoformat() + "Z"
    if end is not None:
        params["created_at_max"] = end.isoformat() + "Z"

    orders: List[Dict[str, Any]] = []
    while url:
        try:
            response = http_client.send(
                "GET", url, SOURCE,
                headers={"X-Shopify-Access-Token": access_token, "Content-Type": "application/json"},
                params=params,
            )
        except UpstreamAuthError as e:
            if e.status_code == 401 and not retried_auth and credentials.has_client_credentials:
                retried_auth = True
                logger.info("[STOREFRONT] 401, refreshing access token and retrying")
                access_token = get_access_token(brand_id, credentials, cache, force_refresh=True)
                continue
            raise

        data = http_client.parse_json(response, SOURCE)
        page = (data.get("orders") or []) if isinstance(data, dict) else []
        if not isinstance(page, list):
            raise MalformedPayloadError(f"{SOURCE} orders is not a list: {type(page).__name__}")
        orders.extend(order for order in page if isinstance(order, dict))

        # Next-page URLs already carry page_info and limit
        url = response.links.get("next", {}).get("url")
        params = None

    logger.info(f"[STOREFRONT] fetched={len(orders)} for brand={brand_id}")
    return orders


def _customer_name(raw_order: Dict[str, Any]) -> Optional[str]:
    customer = raw_order.get("customer") or {}
    if customer:
        name = f"{customer.get('first_name') or ''} {customer.get('last_name') or ''}".strip()
        if name:
            return name
    return first_non_blank((raw_order.get("billing_address") or {}).get("name"))


def map_storefront_order(raw_order: Dict[str, Any], brand_id: str) -> Optional[Dict[str, Any]]:
    """Flatten one storefront order into a storefront_orders row; None without an id."""
    order_id = normalize_identifier(raw_order.get("id"))
    if not order_id:
        return None

    fulfillments = []
    tracking_numbers: List[str] = []
    courier_partner = None
    for fulfillment in raw_order.get("fulfillments") or []:
        if not isinstance(fulfillment, dict):
            continue
        numbers = fulfillment.get("tracking_numbers")
        if not isinstance(numbers, list):
            numbers = [fulfillment.get("tracking_number")] if fulfillment.get("tracking_number") else []
        tracking_numbers.extend(str(n) for n in numbers if n)
        if fulfillment.get("tracking_company") and not courier_partner:
            courier_partner = fulfillment["tracking_company"]
        fulfillments.append({
            "id": fulfillment.get("id"),
            "status": fulfillment.get("status"),
            "tracking_company": fulfillment.get("tracking_company"),
            "tracking_numbers": [str(n) for n in numbers if n],
            "created_at": fulfillment.get("created_at"),
        })

    line_items = [
        {
            "title": item.get("title"),
            "quantity": item.get("quantity"),
            "price": item.get("price"),
            "sku": item.get("sku"),
        }
        for item in raw_order.get("line_items") or [] if isinstance(item, dict)
    ]

    address = raw_order.get("shipping_address") or raw_order.get("billing_address") or {}
    return {
        "storefront_order_id": order_id,
        "brand_id": brand_id,
        "order_number": normalize_identifier(raw_order.get("order_number")),
        "order_name": normalize_identifier(raw_order.get("name")),
        "email": first_non_blank(raw_order.get("email")),
        "customer_name": _customer_name(raw_order),
        "phone": first_non_blank(raw_order.get("phone"), address.get("phone"), (raw_order.get("customer") or {}).get("phone")),
        "shipping_address": ", ".join(p for p in (address.get("address1"), address.get("address2")) if p) or None,
        "shipping_city": first_non_blank(address.get("city")),
        "created_at": parse_datetime(raw_order.get("created_at")),
        "financial_status": first_non_blank(raw_order.get("financial_status")),
        "fulfillment_status": first_non_blank(raw_order.get("fulfillment_status")) or "unfulfilled",
        "total_price": round(parse_amount(raw_order.get("total_price")), 2),
        "currency": first_non_blank(raw_order.get("currency")) or "PKR",
        "line_items": json.dumps(line_items),
        "fulfillments": json.dumps(fulfillments),
        "tracking_numbers": json.dumps(tracking_numbers),
        "courier_partner": courier_partner,
    }


def _load_existing(db: Session, order_ids: List[str]) -> Dict[str, StorefrontOrder]:
    try:
        rows = db.query(StorefrontOrder).filter(StorefrontOrder.storefront_order_id.in_(order_ids)).all()
    except SQLAlchemyError as e:
        raise StorageError(f"Storefront existing-row load failed: {str(e)}") from e
    return {row.storefront_order_id: row for row in rows}


def persist_storefront_orders(
    db: Session,
    brand_id: str,
    raw_orders: List[Dict[str, Any]],
    clock: Callable[[], datetime] = datetime.utcnow,
) -> StorefrontSyncResult:
    rows: Dict[str, Dict[str, Any]] = {}
    for raw_order in raw_orders:
        row = map_storefront_order(raw_order, brand_id)
        if row is not None:
            rows[row["storefront_order_id"]] = row

    existing = _load_existing(db, list(rows.keys())) if rows else {}
    fetched_at = clock()
    to_write: List[Dict[str, Any]] = []
    unchanged = 0
    conflicts = 0
    for order_id, row in rows.items():
        current = existing.get(order_id)
        if current is not None and current.brand_id != brand_id:
            logger.warning(f"[STOREFRONT] order {order_id} belongs to another brand; skipping")
            conflicts += 1
            continue
        if current is not None and all(getattr(current, name) == row[name] for name in _STOREFRONT_CONTENT_COLUMNS):
            unchanged += 1
            continue
        row["last_fetched_at"] = fetched_at
        to_write.append(row)

    outcome = storefront_store.upsert_storefront_orders(db, to_write)
    new_ids = [row["storefront_order_id"] for row in to_write if row["storefront_order_id"] not in existing]
    claimed = storefront_store.owned_by_other_brand(db, new_ids, brand_id)
    for order_id in claimed:
        logger.warning(f"[STOREFRONT] order {order_id} was claimed by another brand during sync; skipped")
    return StorefrontSyncResult(
        orders=[],
        source=SyncSource.LIVE,
        upserted=outcome.written - len(claimed),
        unchanged=unchanged,
        conflicts=conflicts + len(claimed),
        failed_chunks=len(outcome.failed_chunks),
    )


def sync_storefront(
    db: Session,
    brand_id: str,
    credentials: StorefrontCredentials,
    date_range: DateRange,
    force_live: bool = False,
    cache: TokenCache = token_cache,
) -> StorefrontSyncResult:
    """
    Cache-first storefront sync with fallback to stored orders.

    Raises:
        StorageError: The store could not be read
    """
    if not force_live:
        try:
            cached = storefront_store.query_storefront_orders(db, brand_id, date_range)
            if cached:
                logger.info(f"[STOREFRONT] served {len(cached)} orders from cache for brand={brand_id}")
                return StorefrontSyncResult(orders=cached, source=SyncSource.CACHE)
        except StorageError as e:
            logger.error(f"[STOREFRONT] cache read failed, attempting live fetch: {e}")

    try:
        raw_orders = fetch_storefront_orders(brand_id, credentials, date_range, cache)
    except UpstreamError as e:
        error_kind = "auth" if isinstance(e, UpstreamAuthError) else "upstream"
        logger.warning(f"[STOREFRONT] live fetch failed for brand={brand_id} ({error_kind}): {e}")
        orders = storefront_store.query_storefront_orders(db, brand_id, date_range)
        return StorefrontSyncResult(
            orders=orders,
            source=SyncSource.FALLBACK,
            warning=f"{SOURCE} live sync failed: {str(e)}",
            error_kind=error_kind,
        )

    result = persist_storefront_orders(db, brand_id, raw_orders)
    result.orders = storefront_store.query_storefront_orders(db, brand_id, date_range)
    logger.info(
        f"[STOREFRONT] live sync done for brand={brand_id}: upserted={result.upserted} "
        f"unchanged={result.unchanged} conflicts={result.conflicts} failed_chunks={result.failed_chunks}"
    )
    return result
