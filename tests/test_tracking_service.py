import unittest
from datetime import datetime
from unittest import mock

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from courierhub.database import Base
from courierhub.models.core import Order
from courierhub.services import order_store, postex_service, tracking_service
from courierhub.services.courier_types import CourierCredentials
from courierhub.services.errors import UnsupportedCourierOperation, UpstreamTransientError

CREDENTIALS = CourierCredentials(token="px-token")


def make_order(tracking_number, brand_id="brand-a"):
    return Order(
        tracking_number=tracking_number,
        courier="PostEx",
        brand_id=brand_id,
        invoice_payment=1000.0,
        order_amount=1000.0,
        transaction_fee=0.0,
        transaction_tax=0.0,
        sales_withholding_tax=0.0,
        upfront_payment=0.0,
        net_amount=0.0,
        transaction_status="Booked",
        order_date=datetime(2026, 1, 10),
    )


def tracking_entry(tracking_number, message="Out For Delivery", updated_at="2026-01-12T10:00:00"):
    return {
        "trackingNumber": tracking_number,
        "transactionStatus": "Booked",
        "transactionStatusHistory": [
            {"transactionStatusMessage": "Booked", "updatedAt": "2026-01-10T09:00:00"},
            {"transactionStatusMessage": message, "updatedAt": updated_at},
        ],
    }


class TestLatestStatus(unittest.TestCase):
    def test_last_history_entry_wins(self):
        status, when = tracking_service.latest_status(tracking_entry("PX1"))
        self.assertEqual(status, "Out For Delivery")
        self.assertEqual(when, datetime(2026, 1, 12, 10, 0))

    def test_top_level_fallback(self):
        status, _ = tracking_service.latest_status({"trackingNumber": "PX1", "transactionStatus": "Delivered"})
        self.assertEqual(status, "Delivered")


class TestRefreshTracking(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine("sqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine)
        self.db = self.Session()
        self.db.add_all([make_order(f"PX{i}") for i in range(1, 6)] + [make_order("PX99", brand_id="brand-b")])
        self.db.commit()

    def tearDown(self):
        self.db.close()

    def test_refreshes_every_stored_order_by_default(self):
        def fake_track(credentials, batch):
            return [tracking_entry(n) for n in batch]

        with mock.patch.object(postex_service, "track_bulk", side_effect=fake_track) as track:
            result = tracking_service.refresh_tracking(self.db, "brand-a", "PostEx", CREDENTIALS)

        self.assertEqual(result.requested, 5)
        self.assertEqual(result.updated, 5)
        self.assertEqual(result.failures, [])
        self.assertEqual(track.call_count, 1)
        self.assertEqual(order_store.get_order(self.db, "PostEx", "PX3").last_status, "Out For Delivery")
        self.assertIsNone(order_store.get_order(self.db, "PostEx", "PX99").last_status)

    def test_failed_batch_keeps_the_others(self):
        def fake_track(credentials, batch):
            if "PX3" in batch:
                raise UpstreamTransientError("PostEx request timeout", 408)
            return [tracking_entry(n, message="Delivered") for n in batch]

        with mock.patch.object(tracking_service.settings, "TRACKING_BATCH_SIZE", 2):
            with mock.patch.object(postex_service, "track_bulk", side_effect=fake_track):
                result = tracking_service.refresh_tracking(
                    self.db, "brand-a", "PostEx", CREDENTIALS,
                    tracking_numbers=["PX1", "PX2", "PX3", "PX4", "PX5"],
                )

        self.assertEqual(result.updated, 3)
        self.assertEqual(len(result.failures), 1)
        self.assertEqual(result.failures[0].key, "PX3..(2)")
        self.assertIsNone(order_store.get_order(self.db, "PostEx", "PX4").last_status)
        self.assertEqual(order_store.get_order(self.db, "PostEx", "PX5").last_status, "Delivered")

    def test_payment_status_sweep(self):
        with mock.patch.object(postex_service, "track_bulk", return_value=[]):
            with mock.patch.object(
                postex_service, "fetch_payment_status",
                side_effect=lambda credentials, n: {"trackingNumber": n, "settle": False},
            ):
                result = tracking_service.refresh_tracking(
                    self.db, "brand-a", "PostEx", CREDENTIALS,
                    tracking_numbers=["PX1", " PX1 ", "PX2"],
                    include_payment_status=True,
                )

        self.assertEqual(result.requested, 2)
        self.assertEqual([p["trackingNumber"] for p in result.payment_statuses], ["PX1", "PX2"])

    def test_unsupported_courier(self):
        with self.assertRaises(UnsupportedCourierOperation):
            tracking_service.refresh_tracking(self.db, "brand-a", "Zoom", CREDENTIALS)


if __name__ == "__main__":
    unittest.main()
