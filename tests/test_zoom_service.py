import json
import unittest
from datetime import date, datetime
from unittest import mock

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from courierhub.database import Base
from courierhub.models.core import StorefrontOrder
from courierhub.models.enums import SyncSource
from courierhub.services import sync_orchestrator, zoom_service
from courierhub.services.courier_types import CourierCredentials, DateRange, FetchContext
from courierhub.services.errors import MalformedPayloadError, UpstreamNotFound, UpstreamTransientError
from courierhub.services.storefront_store import Fulfillment, StorefrontRecord

TRACKING_PAGE = """
<html><body>
<div class="panel-body">
  <div class="sender_info">
    <p>Shipper: AG Covers</p>
    <p>Origin: Lahore</p>
  </div>
  <div class="sender_info">
    <p>Name: Bilal Ahmed</p>
    <p>Destination: Karachi</p>
  </div>
  <table class="table_info">
    <tr><th>Date</th><th>Status</th></tr>
    <tr><td>02/01/2026 10:00</td><td>Shipment Picked</td></tr>
    <tr><td>04/01/2026 16:30</td><td>Delivered</td></tr>
  </table>
</div>
</body></html>
"""

NOT_FOUND_PAGE = "<html><body><div class='alert'>No record found</div></body></html>"
EMPTY_PANEL_PAGE = "<html><body><div class='panel-body'></div></body></html>"


def make_record(order_id, tracking_number, carrier="Zoom Express", **overrides):
    values = dict(
        storefront_order_id=order_id,
        brand_id="brand-a",
        order_name=f"#{order_id}",
        customer_name="Bilal Ahmed",
        phone="03211234567",
        shipping_city="Karachi",
        created_at=datetime(2026, 1, 2, 9, 0),
        financial_status="pending",
        total_price=2500.0,
        fulfillments=(Fulfillment(tracking_company=carrier, tracking_numbers=(tracking_number,)),),
    )
    values.update(overrides)
    return StorefrontRecord(**values)


class TestParseTrackingPage(unittest.TestCase):
    def test_parses_parties_and_history(self):
        tracking = zoom_service.parse_tracking_page("ZM1", TRACKING_PAGE)

        self.assertEqual(tracking.shipper, "AG Covers")
        self.assertEqual(tracking.origin, "Lahore")
        self.assertEqual(tracking.consignee_name, "Bilal Ahmed")
        self.assertEqual(tracking.destination, "Karachi")
        self.assertEqual(tracking.history, [
            ("02/01/2026 10:00", "Shipment Picked"),
            ("04/01/2026 16:30", "Delivered"),
        ])
        self.assertEqual(tracking.current_status, "Delivered")

    def test_missing_panel_is_not_found(self):
        with self.assertRaises(UpstreamNotFound):
            zoom_service.parse_tracking_page("ZM404", NOT_FOUND_PAGE)

    def test_empty_panel_is_malformed(self):
        with self.assertRaises(MalformedPayloadError):
            zoom_service.parse_tracking_page("ZM500", EMPTY_PANEL_PAGE)

    @mock.patch("courierhub.services.http_client.requests.request")
    def test_scrape_requests_tracking_page(self, mock_request):
        mock_request.return_value = mock.Mock(status_code=200, ok=True, text=TRACKING_PAGE)

        tracking = zoom_service.scrape_tracking("ZM1")

        self.assertEqual(tracking.current_status, "Delivered")
        args, kwargs = mock_request.call_args
        self.assertEqual(args[0], "GET")
        self.assertTrue(args[1].endswith("/track-detail.php"))
        self.assertEqual(kwargs["params"], {"track_code": "ZM1", "track": ""})
        self.assertIn("User-Agent", kwargs["headers"])


class TestDiscovery(unittest.TestCase):
    def test_fulfillment_carrier_match(self):
        records = [
            make_record("1001", "ZM1"),
            make_record("1002", "PX1", carrier="PostEx"),
        ]
        self.assertEqual(list(zoom_service.discover_zoom_shipments(records)), ["ZM1"])

    def test_courier_partner_fallback_uses_all_tracking_numbers(self):
        record = make_record(
            "1003", "ZM2", carrier=None,
            courier_partner="ZOOM",
            tracking_numbers=("ZM3",),
        )
        self.assertEqual(sorted(zoom_service.discover_zoom_shipments([record])), ["ZM2", "ZM3"])

    def test_date_window_filters_by_storefront_created_at(self):
        records = [
            make_record("1001", "ZM1", created_at=datetime(2026, 1, 2)),
            make_record("1002", "ZM2", created_at=datetime(2026, 2, 2)),
        ]
        window = DateRange(start=date(2026, 2, 1), end=date(2026, 2, 28))
        self.assertEqual(list(zoom_service.discover_zoom_shipments(records, window)), ["ZM2"])

    def test_map_tracking_onto_storefront_order(self):
        tracking = zoom_service.parse_tracking_page("ZM1", TRACKING_PAGE)
        record = make_record(
            "1001", "ZM1",
            line_items=({"title": "Car Cover", "quantity": 2},),
        )

        shipment = zoom_service.map_zoom_tracking(tracking, record)

        self.assertEqual(shipment.order_ref_number, "#1001")
        self.assertEqual(shipment.invoice_payment, 2500.0)
        self.assertEqual(shipment.transaction_status, "Delivered")
        self.assertEqual(shipment.last_status_time, datetime(2026, 1, 4, 16, 30))
        self.assertEqual(shipment.order_date, datetime(2026, 1, 2, 9, 0))
        self.assertEqual(shipment.city_name, "Karachi")
        self.assertEqual(shipment.order_detail, "2 x Car Cover")


class TestZoomStrategyBatch(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine("sqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine)
        self.db = self.Session()

        self.tracking_numbers = [f"ZM{i}" for i in range(1, 11)]
        for i, number in enumerate(self.tracking_numbers, start=1):
            self.db.add(StorefrontOrder(
                storefront_order_id=str(5000 + i),
                brand_id="brand-a",
                order_name=f"#{5000 + i}",
                customer_name="Bilal Ahmed",
                shipping_city="Karachi",
                created_at=datetime(2026, 1, i, 9, 0),
                financial_status="pending",
                fulfillment_status="fulfilled",
                total_price=1000.0 + i,
                fulfillments=json.dumps([{"tracking_company": "Zoom", "tracking_numbers": [number]}]),
                tracking_numbers=json.dumps([number]),
            ))
        self.db.commit()

    def tearDown(self):
        self.db.close()

    def fake_scrape(self, tracking_number):
        if tracking_number == "ZM3":
            raise UpstreamTransientError("Zoom request timeout", 408)
        return zoom_service.parse_tracking_page(tracking_number, TRACKING_PAGE)

    def test_third_of_ten_failing_keeps_the_rest(self):
        context = FetchContext(
            db=self.db, brand_id="brand-a", date_range=DateRange(), credentials=CourierCredentials()
        )
        with mock.patch.object(zoom_service, "scrape_tracking", side_effect=self.fake_scrape):
            result = zoom_service.ZoomStrategy().fetch(context)

        self.assertEqual(result.raw_count, 10)
        self.assertEqual(
            sorted(s.tracking_number for s in result.shipments),
            sorted(n for n in self.tracking_numbers if n != "ZM3"),
        )
        self.assertEqual([f.key for f in result.failures], ["ZM3"])

    def test_sync_persists_surviving_shipments(self):
        with mock.patch.object(zoom_service, "scrape_tracking", side_effect=self.fake_scrape):
            result = sync_orchestrator.sync(self.db, "brand-a", "zoom", force_live=True)

        self.assertEqual(result.source, SyncSource.LIVE)
        self.assertEqual(len(result.orders), 9)
        self.assertEqual(result.change_summary.failed_items, 1)
        self.assertTrue(all(o.net_amount == round(o.invoice_payment - 150 - o.invoice_payment * 0.04, 2) for o in result.orders))


if __name__ == "__main__":
    unittest.main()
