import json
import unittest
from datetime import datetime

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from courierhub.database import Base
from courierhub.models.core import Order, StorefrontOrder
from courierhub.services import discrepancy_service
from courierhub.services.discrepancy_service import (
    MATCH_ORDER_NAME, MATCH_ORDER_NAME_HASH, MATCH_ORDER_NUMBER, MATCH_TRACKING,
    REASON_NO_MATCH, REASON_NOT_REFUNDED
)
from courierhub.services.storefront_store import Fulfillment, StorefrontRecord


def make_order(tracking_number, status="Returned", courier="PostEx", ref=None, amount=1000.0, brand_id="brand-a"):
    return Order(
        tracking_number=tracking_number,
        courier=courier,
        brand_id=brand_id,
        order_ref_number=ref,
        customer_name="Ayesha Khan",
        customer_phone="03001234567",
        city_name="Lahore",
        order_detail="1 x Car Cover",
        invoice_payment=amount,
        order_amount=amount,
        transaction_fee=0.0,
        transaction_tax=0.0,
        sales_withholding_tax=0.0,
        upfront_payment=0.0,
        net_amount=0.0,
        transaction_status=status,
        order_date=datetime(2026, 1, 10),
    )


def make_record(order_id, financial_status="paid", order_number=None, order_name=None, tracking=()):
    return StorefrontRecord(
        storefront_order_id=order_id,
        brand_id="brand-a",
        order_number=order_number,
        order_name=order_name,
        financial_status=financial_status,
        fulfillment_status="fulfilled",
        total_price=1000.0,
        fulfillments=(Fulfillment(tracking_company="PostEx", tracking_numbers=tuple(tracking)),) if tracking else (),
    )


class TestReconcile(unittest.TestCase):
    def test_refunded_match_is_not_a_discrepancy(self):
        report = discrepancy_service.reconcile(
            [make_order("PX1", ref="1001")],
            [make_record("s1", financial_status="refunded", order_number="1001")],
        )
        self.assertEqual(report.total, 0)
        self.assertEqual(report.discrepancies, [])

    def test_paid_match_is_a_discrepancy(self):
        report = discrepancy_service.reconcile(
            [make_order("PX1", ref="1001")],
            [make_record("s1", financial_status="paid", order_number="1001")],
        )

        self.assertEqual(report.total, 1)
        item = report.discrepancies[0]
        self.assertTrue(item.has_match)
        self.assertEqual(item.reason, REASON_NOT_REFUNDED)
        self.assertEqual(item.matched_by, MATCH_ORDER_NUMBER)
        self.assertEqual(item.storefront_status, "paid")
        self.assertEqual(item.storefront_order_id, "s1")

    def test_voided_and_partially_refunded_count_as_refunded(self):
        report = discrepancy_service.reconcile(
            [make_order("PX1", ref="1001"), make_order("PX2", ref="1002")],
            [
                make_record("s1", financial_status="voided", order_number="1001"),
                make_record("s2", financial_status="partially_refunded", order_number="1002"),
            ],
        )
        self.assertEqual(report.total, 0)

    def test_unmatched_return(self):
        report = discrepancy_service.reconcile([make_order("PX9", ref="9999")], [])

        item = report.discrepancies[0]
        self.assertFalse(item.has_match)
        self.assertEqual(item.reason, REASON_NO_MATCH)
        self.assertIsNone(item.storefront_status)

    def test_non_returned_orders_are_ignored(self):
        report = discrepancy_service.reconcile(
            [make_order("PX1", status="Delivered"), make_order("PX2", status="In Transit")], []
        )
        self.assertEqual(report.total, 0)

    def test_match_key_chain(self):
        records = [
            make_record("by-number", order_number="1001", order_name="#5555"),
            make_record("by-name", order_name="#1002"),
            make_record("by-variant", order_name="#1003"),
            make_record("by-tracking", tracking=["PX4"]),
        ]
        orders = [
            make_order("PX1", ref="1001"),
            make_order("PX2", ref="#1002"),
            make_order("PX3", ref="1003"),
            make_order("PX4", ref="not-on-storefront"),
        ]

        report = discrepancy_service.reconcile(orders, records)

        matched = {d.tracking_number: (d.storefront_order_id, d.matched_by) for d in report.discrepancies}
        self.assertEqual(matched, {
            "PX1": ("by-number", MATCH_ORDER_NUMBER),
            "PX2": ("by-name", MATCH_ORDER_NAME),
            "PX3": ("by-variant", MATCH_ORDER_NAME_HASH),
            "PX4": ("by-tracking", MATCH_TRACKING),
        })

    def test_order_number_beats_order_name(self):
        records = [
            make_record("named", order_name="1001", financial_status="paid"),
            make_record("numbered", order_number="1001", financial_status="refunded"),
        ]
        report = discrepancy_service.reconcile([make_order("PX1", ref="1001")], records)
        self.assertEqual(report.total, 0)

    def test_summary_totals(self):
        orders = [
            make_order("PX1", amount=1200.5),
            make_order("TZ1", courier="Tranzo", status="RTO", amount=800.25),
            make_order("TZ2", courier="Tranzo", amount=100.0),
        ]

        report = discrepancy_service.reconcile(orders, [])

        self.assertEqual(report.per_courier_counts, {"PostEx": 1, "Tranzo": 2})
        self.assertEqual(report.total_amount_at_risk, 2100.75)
        self.assertEqual([d.tracking_number for d in report.discrepancies], ["PX1", "TZ1", "TZ2"])


class TestFindDiscrepancies(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine("sqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine)
        self.db = self.Session()

        self.db.add_all([
            make_order("PX1", ref="#1001"),
            make_order("TZ1", courier="Tranzo", ref="#1002"),
            make_order("PX9", ref="#1001", brand_id="brand-b"),
            StorefrontOrder(
                storefront_order_id="s1", brand_id="brand-a", order_name="#1001",
                financial_status="paid", total_price=1000.0,
                fulfillments=json.dumps([{"tracking_company": "PostEx", "tracking_numbers": ["PX1"]}]),
            ),
            StorefrontOrder(
                storefront_order_id="s2", brand_id="brand-a", order_name="#1002",
                financial_status="refunded", total_price=1000.0,
            ),
        ])
        self.db.commit()

    def tearDown(self):
        self.db.close()

    def test_all_couriers_for_brand(self):
        report = discrepancy_service.find_discrepancies(self.db, "brand-a", "all")
        self.assertEqual([d.tracking_number for d in report.discrepancies], ["PX1"])

    def test_courier_filter(self):
        self.assertEqual(discrepancy_service.find_discrepancies(self.db, "brand-a", "tranzo").total, 0)
        self.assertEqual(discrepancy_service.find_discrepancies(self.db, "brand-a", "postex").total, 1)


if __name__ == "__main__":
    unittest.main()
