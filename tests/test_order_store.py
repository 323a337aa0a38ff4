import unittest
from datetime import date, datetime
from unittest import mock

from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from courierhub.database import Base
from courierhub.models.core import Order
from courierhub.services import order_store
from courierhub.services.courier_types import DateRange
from courierhub.services.errors import StorageError


def order_row(tracking_number, brand_id="brand-a", courier="PostEx", **overrides):
    row = {
        "tracking_number": tracking_number,
        "courier": courier,
        "brand_id": brand_id,
        "order_ref_number": "#1001",
        "customer_name": "Ayesha Khan",
        "customer_phone": "03001234567",
        "delivery_address": "House 12, Street 4",
        "city_name": "Lahore",
        "order_detail": "1 x Car Cover",
        "order_type": "COD",
        "order_amount": 1000.0,
        "invoice_payment": 1000.0,
        "transaction_fee": 50.0,
        "transaction_tax": 20.0,
        "sales_withholding_tax": 40.0,
        "upfront_payment": 0.0,
        "net_amount": 890.0,
        "order_status": "Booked",
        "transaction_status": "Booked",
        "last_status": None,
        "last_status_time": None,
        "order_date": datetime(2026, 1, 10, 9, 0),
        "transaction_date": datetime(2026, 1, 12, 12, 0),
        "last_fetched_at": datetime(2026, 1, 20),
    }
    row.update(overrides)
    return row


class TestOrderUpsert(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine("sqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine)
        self.db = self.Session()

    def tearDown(self):
        self.db.close()

    def test_insert_then_update_in_place(self):
        order_store.upsert_orders(self.db, [order_row("PX100")])
        outcome = order_store.upsert_orders(self.db, [order_row("PX100", transaction_status="Delivered")])

        self.assertEqual(outcome.written, 1)
        rows = self.db.query(Order).all()
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0].transaction_status, "Delivered")

    def test_brand_is_pinned_on_update(self):
        order_store.upsert_orders(self.db, [order_row("PX100", brand_id="brand-a")])
        order_store.upsert_orders(self.db, [order_row("PX100", brand_id="brand-b", customer_name="Someone Else")])

        row = order_store.get_order(self.db, "PostEx", "PX100")
        self.assertEqual(row.brand_id, "brand-a")
        self.assertEqual(row.customer_name, "Someone Else")

    def test_same_tracking_number_on_two_couriers(self):
        order_store.upsert_orders(self.db, [order_row("777", courier="PostEx"), order_row("777", courier="Tranzo")])

        self.assertEqual(self.db.query(Order).count(), 2)

    def test_failed_chunk_does_not_undo_earlier_chunks(self):
        rows = [
            order_row("PX1"),
            order_row("PX2", order_date=None),
            order_row("PX3"),
        ]
        outcome = order_store.upsert_orders(self.db, rows, chunk_size=1)

        self.assertEqual(outcome.written, 2)
        self.assertEqual([f.key for f in outcome.failed_chunks], ["chunk:1"])
        stored = sorted(o.tracking_number for o in self.db.query(Order).all())
        self.assertEqual(stored, ["PX1", "PX3"])

    def test_empty_upsert_is_a_no_op(self):
        outcome = order_store.upsert_orders(self.db, [])
        self.assertEqual(outcome.written, 0)
        self.assertEqual(outcome.failed_chunks, [])


class TestOrderQueries(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine("sqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine)
        self.db = self.Session()

        order_store.upsert_orders(self.db, [
            order_row("PX1", order_date=datetime(2026, 1, 1, 8), transaction_date=datetime(2026, 1, 3)),
            order_row("PX2", order_date=datetime(2026, 1, 15, 23, 59), transaction_date=None),
            order_row("PX3", order_date=datetime(2026, 1, 16), transaction_date=datetime(2026, 1, 18)),
            order_row("TZ1", courier="Tranzo", order_date=datetime(2026, 1, 5)),
            order_row("PX9", brand_id="brand-b", order_date=datetime(2026, 1, 5)),
        ])

    def tearDown(self):
        self.db.close()

    def test_scoped_to_brand_and_courier(self):
        orders = order_store.query_orders(self.db, "brand-a", "PostEx")
        self.assertEqual({o.tracking_number for o in orders}, {"PX1", "PX2", "PX3"})

    def test_end_date_is_inclusive(self):
        orders = order_store.query_orders(
            self.db, "brand-a", "PostEx", DateRange(start=date(2026, 1, 1), end=date(2026, 1, 15))
        )
        self.assertEqual({o.tracking_number for o in orders}, {"PX1", "PX2"})

    def test_newest_transaction_first_nulls_last(self):
        orders = order_store.query_orders(self.db, "brand-a", "PostEx")
        self.assertEqual([o.tracking_number for o in orders], ["PX3", "PX1", "PX2"])

    def test_load_existing_orders(self):
        existing = order_store.load_existing_orders(self.db, "PostEx", ["PX1", "PX3", "NOPE"])
        self.assertEqual(set(existing), {"PX1", "PX3"})

    def test_query_failure_raises_storage_error(self):
        failure = OperationalError("SELECT", {}, Exception("database is locked"))
        with mock.patch.object(self.db, "query", side_effect=failure):
            with self.assertRaises(StorageError):
                order_store.query_orders(self.db, "brand-a")

    def test_apply_status_updates_only_touches_own_brand(self):
        changed = order_store.apply_status_updates(self.db, "brand-a", "PostEx", {
            "PX1": ("Out For Delivery", datetime(2026, 1, 4, 9)),
            "PX9": ("Delivered", datetime(2026, 1, 6)),
            "MISSING": ("Delivered", None),
        })

        self.assertEqual(changed, 1)
        self.assertEqual(order_store.get_order(self.db, "PostEx", "PX1").last_status, "Out For Delivery")
        self.assertIsNone(order_store.get_order(self.db, "PostEx", "PX9").last_status)

    def test_apply_status_updates_skips_identical(self):
        update = {"PX1": ("Out For Delivery", datetime(2026, 1, 4, 9))}
        order_store.apply_status_updates(self.db, "brand-a", "PostEx", update)
        self.assertEqual(order_store.apply_status_updates(self.db, "brand-a", "PostEx", update), 0)


if __name__ == "__main__":
    unittest.main()
