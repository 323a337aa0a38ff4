"""
Zoom Service - Scraper for the Zoom COD tracking portal.

Zoom has no merchant API. Shipments are discovered from stored storefront
orders whose fulfillment carrier (or courier partner) mentions Zoom, and
each tracking number's public tracking page is scraped for its status
history. Scrapes run in small all-settle batches so one bad page never
drops its siblings.
"""
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from bs4 import BeautifulSoup

from courierhub.config import settings
from courierhub.models.enums import Courier
from courierhub.services import http_client, storefront_store
from courierhub.services.batching import run_settled
from courierhub.services.courier_strategy import CourierStrategy
from courierhub.services.courier_types import DateRange, FetchContext, FetchResult, RawShipment
from courierhub.services.errors import MalformedPayloadError, UpstreamNotFound
from courierhub.services.storefront_store import StorefrontRecord
from courierhub.utils.normalization import first_non_blank, parse_datetime

logger = logging.getLogger(__name__)

SOURCE = "Zoom"
CARRIER_NEEDLE = "zoom"

BROWSER_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
}


@dataclass
class ZoomTracking:
    tracking_number: str
    shipper: str = ""
    origin: str = ""
    consignee_name: str = ""
    destination: str = ""
    history: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def current_status(self) -> str:
        return self.history[-1][1] if self.history else "Unknown"

    @property
    def last_update(self) -> str:
        return self.history[-1][0] if self.history else ""


def _labelled_values(block, labels: Dict[str, str]) -> Dict[str, str]:
    found: Dict[str, str] = {}
    if block is None:
        return found
    for paragraph in block.find_all("p"):
        text = paragraph.get_text(" ", strip=True)
        for label, key in labels.items():
            if text.startswith(label):
                found[key] = text[len(label):].strip()
    return found


def parse_tracking_page(tracking_number: str, html: str) -> ZoomTracking:
    """
    Parse the portal's tracking page.

    Layout: `.panel-body` holds two `.sender_info` blocks (shipper, then
    consignee) and a `.table_info` table whose first row is a header and
    whose last row is the current status.

    Raises:
        UpstreamNotFound: No tracking panel (unknown tracking number)
        MalformedPayloadError: Panel present but carries no tracking data
    """
    soup = BeautifulSoup(html, "html.parser")
    panel = soup.select_one(".panel-body")
    if panel is None:
        raise UpstreamNotFound(f"Zoom tracking not found for {tracking_number}", 404)

    sender_blocks = panel.select(".sender_info")
    shipper_info = _labelled_values(
        sender_blocks[0] if sender_blocks else None,
        {"Shipper:": "shipper", "Origin:": "origin"},
    )
    consignee_info = _labelled_values(
        sender_blocks[1] if len(sender_blocks) > 1 else None,
        {"Name:": "consignee_name", "Destination:": "destination"},
    )

    history: List[Tuple[str, str]] = []
    table = panel.select_one(".table_info")
    if table is not None:
        for row in table.find_all("tr")[1:]:
            cells = row.find_all("td")
            if len(cells) >= 2:
                history.append((cells[0].get_text(strip=True), cells[1].get_text(strip=True)))

    if not history and not shipper_info.get("shipper") and not consignee_info.get("consignee_name"):
        raise MalformedPayloadError(f"Zoom page for {tracking_number} has no tracking data")

    return ZoomTracking(
        tracking_number=tracking_number,
        history=history,
        **shipper_info,
        **consignee_info,
    )


def scrape_tracking(tracking_number: str) -> ZoomTracking:
    response = http_client.send(
        "GET",
        f"{settings.ZOOM_PORTAL_URL.rstrip('/')}/track-detail.php",
        SOURCE,
        headers=BROWSER_HEADERS,
        params={"track_code": tracking_number, "track": ""},
    )
    return parse_tracking_page(tracking_number, response.text)


def _zoom_tracking_numbers(record: StorefrontRecord) -> List[str]:
    numbers: List[str] = []
    for fulfillment in record.fulfillments:
        if fulfillment.carrier_mentions(CARRIER_NEEDLE):
            numbers.extend(fulfillment.tracking_numbers)
    if not numbers and CARRIER_NEEDLE in (record.courier_partner or "").lower():
        numbers.extend(record.all_tracking_numbers())
    return numbers


def discover_zoom_shipments(
    records: List[StorefrontRecord],
    date_range: Optional[DateRange] = None,
) -> Dict[str, StorefrontRecord]:
    """Map each Zoom tracking number to the storefront order it ships."""
    shipments: Dict[str, StorefrontRecord] = {}
    for record in records:
        if date_range is not None and not date_range.contains(record.created_at):
            continue
        for number in _zoom_tracking_numbers(record):
            shipments[number] = record
    return shipments


def map_zoom_tracking(tracking: ZoomTracking, record: StorefrontRecord) -> RawShipment:
    status = tracking.current_status
    status_time = parse_datetime(tracking.last_update)
    return RawShipment(
        tracking_number=tracking.tracking_number,
        order_ref_number=first_non_blank(record.order_name, record.order_number),
        customer_name=first_non_blank(tracking.consignee_name, record.customer_name) or "N/A",
        customer_phone=first_non_blank(record.phone),
        delivery_address=first_non_blank(record.shipping_address),
        city_name=first_non_blank(tracking.destination, record.shipping_city) or "Unknown",
        order_detail=record.line_item_summary() or "Items",
        order_type="COD",
        order_amount=record.total_price,
        invoice_payment=record.total_price,
        order_status=status,
        transaction_status=status,
        last_status=status,
        last_status_time=status_time,
        order_date=record.created_at,
        transaction_date=status_time or record.created_at,
    )


class ZoomStrategy(CourierStrategy):
    courier = Courier.ZOOM

    def fetch(self, context: FetchContext) -> FetchResult:
        records = storefront_store.load_records(context.db, context.brand_id)
        shipments = discover_zoom_shipments(records, context.date_range)
        logger.info(f"[ZOOM] discovered {len(shipments)} tracking numbers for brand={context.brand_id}")

        def scrape(tracking_number: str) -> RawShipment:
            return map_zoom_tracking(scrape_tracking(tracking_number), shipments[tracking_number])

        settled = run_settled(
            list(shipments.keys()),
            scrape,
            batch_size=settings.ZOOM_SCRAPE_BATCH_SIZE,
            label="ZOOM",
        )
        return FetchResult(shipments=settled.results, raw_count=len(shipments), failures=settled.failures)
