import unittest

from courierhub.models.enums import Courier, StatusBucket
from courierhub.services import financial_normalizer
from courierhub.services.courier_types import RawShipment


class TestPostExFinancials(unittest.TestCase):
    def test_delivered_order_withholds_four_percent(self):
        raw = RawShipment(
            tracking_number="PX1",
            invoice_payment=1000,
            transaction_fee=50,
            transaction_tax=20,
            transaction_status="Delivered",
        )
        result = financial_normalizer.normalize(raw, Courier.POSTEX)

        self.assertEqual(result.bucket, StatusBucket.DELIVERED)
        self.assertEqual(result.sales_withholding_tax, 40.0)
        self.assertEqual(result.net_amount, 890.0)

    def test_returned_order_uses_reversal_charges(self):
        raw = RawShipment(
            tracking_number="PX2",
            invoice_payment=1000,
            transaction_fee=50,
            transaction_tax=20,
            reversal_fee=30,
            reversal_tax=10,
            transaction_status="Returned",
        )
        result = financial_normalizer.normalize(raw, Courier.POSTEX)

        self.assertEqual(result.bucket, StatusBucket.RETURNED)
        self.assertEqual(result.transaction_fee, 30.0)
        self.assertEqual(result.transaction_tax, 10.0)
        self.assertEqual(result.sales_withholding_tax, 0.0)
        self.assertEqual(result.net_amount, -40.0)

    def test_cancelled_order_nets_zero(self):
        raw = RawShipment(tracking_number="PX3", invoice_payment=1000, transaction_status="Cancelled")
        result = financial_normalizer.normalize(raw, Courier.POSTEX)

        self.assertEqual(result.bucket, StatusBucket.CANCELLED)
        self.assertEqual(result.net_amount, 0.0)
        self.assertEqual(result.sales_withholding_tax, 0.0)

    def test_in_transit_order_nets_like_delivered(self):
        raw = RawShipment(
            tracking_number="PX4",
            invoice_payment=2500,
            transaction_fee=100,
            transaction_tax=16,
            order_status="Out For Delivery",
        )
        result = financial_normalizer.normalize(raw, "PostEx")

        self.assertEqual(result.bucket, StatusBucket.IN_TRANSIT)
        self.assertEqual(result.net_amount, 2284.0)


class TestTranzoFinancials(unittest.TestCase):
    def test_tariff_fees_sum_into_transaction_fee(self):
        raw = RawShipment(
            tracking_number="TZ1",
            invoice_payment=500,
            delivery_fee=90,
            fuel_fee=4,
            cash_handling_fee=6.5,
            delivery_tax=13.44,
            transaction_status="Delivered",
        )
        result = financial_normalizer.normalize(raw, Courier.TRANZO)

        self.assertEqual(result.transaction_fee, 100.5)
        self.assertEqual(result.transaction_tax, 13.44)
        self.assertEqual(result.sales_withholding_tax, 0.0)
        self.assertEqual(result.net_amount, 386.06)


class TestZoomFinancials(unittest.TestCase):
    def test_flat_fee_and_commission(self):
        raw = RawShipment(tracking_number="ZM1", invoice_payment=1000, transaction_status="Delivered")
        result = financial_normalizer.normalize(raw, Courier.ZOOM)

        self.assertEqual(result.transaction_fee, 150.0)
        self.assertEqual(result.transaction_tax, 40.0)
        self.assertEqual(result.net_amount, 810.0)


class TestNormalizeDispatch(unittest.TestCase):
    def test_unknown_courier_raises(self):
        with self.assertRaises(ValueError):
            financial_normalizer.normalize(RawShipment(tracking_number="X"), "Leopards")


if __name__ == "__main__":
    unittest.main()
