from sqlalchemy import Column, Integer, String, Float, DateTime, Text, UniqueConstraint, Index
from datetime import datetime
from courierhub.database import Base

class Order(Base):
    """Canonical shipment record, one row per physical shipment."""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    tracking_number = Column(String(64), nullable=False)
    courier = Column(String(20), nullable=False)
    brand_id = Column(String(64), nullable=False, index=True)

    # Commercial
    order_ref_number = Column(String(128), nullable=True)
    customer_name = Column(String(255), nullable=True)
    customer_phone = Column(String(50), nullable=True)
    delivery_address = Column(Text, nullable=True)
    city_name = Column(String(128), nullable=True)
    order_detail = Column(Text, nullable=True)
    order_type = Column(String(32), nullable=True)

    # Money
    order_amount = Column(Float, nullable=False, default=0.0)
    invoice_payment = Column(Float, nullable=False, default=0.0)
    transaction_fee = Column(Float, nullable=False, default=0.0)
    transaction_tax = Column(Float, nullable=False, default=0.0)
    sales_withholding_tax = Column(Float, nullable=False, default=0.0)
    upfront_payment = Column(Float, nullable=False, default=0.0)
    net_amount = Column(Float, nullable=False, default=0.0)

    # Status
    order_status = Column(String(128), nullable=True)
    transaction_status = Column(String(128), nullable=True)
    last_status = Column(String(255), nullable=True)
    last_status_time = Column(DateTime, nullable=True)

    # Dates
    order_date = Column(DateTime, nullable=False)
    transaction_date = Column(DateTime, nullable=True)
    last_fetched_at = Column(DateTime, nullable=True, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint('courier', 'tracking_number', name='uq_orders_courier_tracking'),
        Index('ix_orders_brand_courier_order_date', 'brand_id', 'courier', 'order_date'),
    )

class StorefrontOrder(Base):
    """E-commerce order as pulled from the storefront; fulfillments and tracking numbers stay serialized JSON."""
    __tablename__ = "storefront_orders"

    id = Column(Integer, primary_key=True, index=True)
    storefront_order_id = Column(String(64), unique=True, nullable=False)
    brand_id = Column(String(64), nullable=False, index=True)

    order_number = Column(String(64), nullable=True)
    order_name = Column(String(64), nullable=True)
    email = Column(String(255), nullable=True)
    customer_name = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=True)
    shipping_address = Column(Text, nullable=True)
    shipping_city = Column(String(128), nullable=True)

    created_at = Column(DateTime, nullable=True)
    financial_status = Column(String(32), nullable=True)
    fulfillment_status = Column(String(32), nullable=True)
    total_price = Column(Float, nullable=False, default=0.0)
    currency = Column(String(3), nullable=False, default="PKR")

    line_items = Column(Text, nullable=True)
    fulfillments = Column(Text, nullable=True)
    tracking_numbers = Column(Text, nullable=True)
    courier_partner = Column(String(128), nullable=True)

    last_fetched_at = Column(DateTime, nullable=True, default=datetime.utcnow)
