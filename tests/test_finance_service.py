import unittest
from datetime import datetime

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from courierhub.database import Base
from courierhub.models.core import Order, StorefrontOrder
from courierhub.services import finance_service
from courierhub.services.storefront_store import Fulfillment, StorefrontRecord


def make_order(tracking_number, status, order_date, courier="PostEx", invoice=1000.0, fee=50.0, tax=20.0, net=890.0):
    return Order(
        tracking_number=tracking_number,
        courier=courier,
        brand_id="brand-a",
        invoice_payment=invoice,
        order_amount=invoice,
        transaction_fee=fee,
        transaction_tax=tax,
        sales_withholding_tax=invoice * 0.04,
        upfront_payment=0.0,
        net_amount=net,
        transaction_status=status,
        order_date=order_date,
    )


class TestCourierBreakdown(unittest.TestCase):
    def test_totals_and_month_day_rollup(self):
        orders = [
            make_order("PX1", "Delivered", datetime(2026, 1, 10, 9)),
            make_order("PX2", "Returned", datetime(2026, 1, 10, 15), net=-40.0),
            make_order("PX3", "Booked", datetime(2026, 2, 2)),
            make_order("TZ1", "Delivered", datetime(2026, 2, 3), courier="Tranzo", invoice=500.0, fee=94.0, tax=13.44, net=392.56),
        ]

        breakdown = finance_service.courier_breakdown(orders)

        self.assertEqual(sorted(breakdown), ["PostEx", "Tranzo"])
        totals = breakdown["PostEx"]["totals"]
        self.assertEqual(totals["total_orders"], 3)
        self.assertEqual(totals["delivered_orders"], 1)
        self.assertEqual(totals["returned_orders"], 1)
        self.assertEqual(totals["gross_amount"], 3000.0)
        self.assertEqual(totals["net_amount"], 1740.0)

        months = breakdown["PostEx"]["monthly"]
        self.assertEqual([m["month"] for m in months], ["2026-02", "2026-01"])
        january = months[1]
        self.assertEqual(january["total_orders"], 2)
        self.assertEqual([d["date"] for d in january["days"]], ["2026-01-10"])
        self.assertEqual(january["days"][0]["net_amount"], 850.0)

        self.assertEqual(breakdown["Tranzo"]["totals"]["taxes"], 13.44)


class TestStorefrontRevenue(unittest.TestCase):
    def record(self, order_id, price, financial="paid", fulfillment="fulfilled", carrier=None, partner=None):
        fulfillments = (Fulfillment(tracking_company=carrier, tracking_numbers=("T",)),) if carrier else ()
        return StorefrontRecord(
            storefront_order_id=order_id,
            brand_id="brand-a",
            financial_status=financial,
            fulfillment_status=fulfillment,
            total_price=price,
            courier_partner=partner,
            fulfillments=fulfillments,
        )

    def test_channels(self):
        records = [
            self.record("1", 1000.0, carrier="PostEx"),
            self.record("2", 500.0, partner="Tranzo Logistics"),
            self.record("3", 700.0, carrier="Zoom COD"),
            self.record("4", 300.0, financial="refunded", carrier="PostEx"),
            self.record("5", 200.0, fulfillment="unfulfilled"),
            self.record("6", 100.0, carrier="TCS"),
        ]

        revenue = finance_service.storefront_revenue(records)

        self.assertEqual(revenue["order_count"], 6)
        self.assertEqual(revenue["total_revenue"], 2800.0)
        self.assertEqual(revenue["by_channel"], {
            "PostEx": 1000.0,
            "Tranzo": 500.0,
            "Zoom": 700.0,
            "cancelled_pending": 600.0,
        })


class TestFinanceSummary(unittest.TestCase):
    def setUp(self):
        self.engine = create_engine("sqlite:///:memory:")
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine)
        self.db = self.Session()

    def tearDown(self):
        self.db.close()

    def test_summary_combines_both_stores(self):
        self.db.add_all([
            make_order("PX1", "Delivered", datetime(2026, 1, 10)),
            StorefrontOrder(
                storefront_order_id="s1", brand_id="brand-a", created_at=datetime(2026, 1, 9),
                financial_status="paid", fulfillment_status="fulfilled", total_price=1000.0,
                courier_partner="PostEx",
            ),
            StorefrontOrder(
                storefront_order_id="s2", brand_id="brand-b", created_at=datetime(2026, 1, 9),
                financial_status="paid", fulfillment_status="fulfilled", total_price=5000.0,
            ),
        ])
        self.db.commit()

        summary = finance_service.finance_summary(self.db, "brand-a")

        self.assertEqual(summary["couriers"]["PostEx"]["totals"]["total_orders"], 1)
        self.assertEqual(summary["storefront"]["total_revenue"], 1000.0)
        self.assertEqual(summary["storefront"]["by_channel"]["PostEx"], 1000.0)


if __name__ == "__main__":
    unittest.main()
