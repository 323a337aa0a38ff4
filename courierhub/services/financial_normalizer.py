"""
Financial normalizer - per-courier settlement arithmetic.

Maps a RawShipment to the fee/tax/withholding/net fields written onto the
canonical Order. Pure functions only: no database, no network.

PostEx (native settlement fields):
- non-return: withholding = invoice * 4%, net = invoice - fee - tax - withholding
- returned:   reversal fee/tax replace the standard ones, withholding = 0, net = -(fee + tax)
- cancelled:  withholding = 0, net = 0

Tranzo (tariff fields, no reversal data upstream):
- fee = delivery + fuel + cash handling, tax = delivery tax, net = invoice - fee - tax

Zoom (scraped portal, no fee fields at all):
- fee = flat 150, tax = invoice * 4% commission, net = invoice - fee - tax
"""
from typing import Callable, Dict

from courierhub.models.enums import Courier, StatusBucket, parse_courier
from courierhub.services.courier_types import FinancialFields, RawShipment
from courierhub.services.status_mapping import classify_status

# Constants
POSTEX_WITHHOLDING_RATE = 0.04
ZOOM_DELIVERY_FEE = 150.0
ZOOM_COMMISSION_RATE = 0.04


def _money(value: float) -> float:
    # Round to paisa; also normalizes -0.0
    return round(value, 2) + 0.0


def postex_financials(raw: RawShipment, bucket: StatusBucket) -> FinancialFields:
    invoice = raw.invoice_payment

    if bucket == StatusBucket.RETURNED:
        fee = raw.reversal_fee
        tax = raw.reversal_tax
        return FinancialFields(
            bucket=bucket,
            transaction_fee=_money(fee),
            transaction_tax=_money(tax),
            sales_withholding_tax=0.0,
            net_amount=_money(-(fee + tax)),
        )

    fee = raw.transaction_fee
    tax = raw.transaction_tax

    if bucket == StatusBucket.CANCELLED:
        return FinancialFields(
            bucket=bucket,
            transaction_fee=_money(fee),
            transaction_tax=_money(tax),
            sales_withholding_tax=0.0,
            net_amount=0.0,
        )

    withholding = invoice * POSTEX_WITHHOLDING_RATE
    return FinancialFields(
        bucket=bucket,
        transaction_fee=_money(fee),
        transaction_tax=_money(tax),
        sales_withholding_tax=_money(withholding),
        net_amount=_money(invoice - fee - tax - withholding),
    )


def tranzo_financials(raw: RawShipment, bucket: StatusBucket) -> FinancialFields:
    fee = raw.delivery_fee + raw.fuel_fee + raw.cash_handling_fee
    tax = raw.delivery_tax
    return FinancialFields(
        bucket=bucket,
        transaction_fee=_money(fee),
        transaction_tax=_money(tax),
        sales_withholding_tax=0.0,
        net_amount=_money(raw.invoice_payment - fee - tax),
    )


def zoom_financials(raw: RawShipment, bucket: StatusBucket) -> FinancialFields:
    fee = ZOOM_DELIVERY_FEE
    tax = raw.invoice_payment * ZOOM_COMMISSION_RATE
    return FinancialFields(
        bucket=bucket,
        transaction_fee=_money(fee),
        transaction_tax=_money(tax),
        sales_withholding_tax=0.0,
        net_amount=_money(raw.invoice_payment - fee - tax),
    )


FINANCIAL_RULES: Dict[Courier, Callable[[RawShipment, StatusBucket], FinancialFields]] = {
    Courier.POSTEX: postex_financials,
    Courier.TRANZO: tranzo_financials,
    Courier.ZOOM: zoom_financials,
}


def normalize(raw: RawShipment, courier: Courier) -> FinancialFields:
    """
    Compute settlement fields for one shipment.

    Args:
        raw: Shipment as mapped by the courier adapter
        courier: Courier that reported it (selects the formula and status table)

    Returns:
        FinancialFields with the status bucket used for the calculation

    Raises:
        ValueError: If the courier has no financial rule
    """
    resolved = parse_courier(courier)
    rule = FINANCIAL_RULES.get(resolved)
    if rule is None:
        raise ValueError(f"No financial rule for courier: {courier}")
    bucket = classify_status(raw.authoritative_status, resolved)
    return rule(raw, bucket)
