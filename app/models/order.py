# app/models/order.py
from sqlalchemy import BigInteger, Column, Date, DateTime, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import relationship

from app.db.session import Base

# --- Статусы заказа ---
PENDING = "PENDING"
CONFIRMED = "CONFIRMED"
PROCESSING = "PROCESSING"
SHIPPING = "SHIPPING"
DELIVERED = "DELIVERED"
CANCELLED = "CANCELLED"
REFUNDED = "REFUNDED"

# --- Статусы оплаты (независимая ось) ---
PAYMENT_PENDING = "PENDING"
PAYMENT_PAID = "PAID"
PAYMENT_FAILED = "FAILED"

# --- Способы оплаты ---
COD = "COD"
SEPAY_QR = "SEPAY_QR"

# Заказы в этих статусах не "расходуют" ваучер
VOUCHER_RELEASING_STATUSES = {CANCELLED, REFUNDED}


class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_number = Column(String, unique=True, index=True, nullable=False)
    customer_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    status = Column(String, nullable=False, default=PENDING, index=True)
    payment_status = Column(String, nullable=False, default=PAYMENT_PENDING)
    payment_method = Column(String, nullable=False)

    # Деньги - целые VND. total = subtotal - discount_amount + shipping_fee
    subtotal = Column(BigInteger, nullable=False)
    discount_amount = Column(BigInteger, nullable=False, default=0)
    shipping_fee = Column(BigInteger, nullable=False, default=0)
    total = Column(BigInteger, nullable=False)
    loyalty_points_redeemed = Column(Integer, nullable=False, default=0, server_default='0')

    # Слабая ссылка: заказ не владеет ваучером
    voucher_id = Column(Integer, ForeignKey("vouchers.id"), nullable=True, index=True)

    shipping_name = Column(String, nullable=False)
    shipping_phone = Column(String, nullable=False)
    shipping_email = Column(String, nullable=True)
    shipping_province = Column(String, nullable=False)
    shipping_district = Column(String, nullable=False)
    shipping_ward = Column(String, nullable=False)
    shipping_address = Column(String, nullable=False)
    note = Column(Text, nullable=True)

    # ID транзакции во внешней платежной системе (SePay)
    payment_tx_id = Column(String, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    paid_at = Column(DateTime(timezone=True), nullable=True)
    shipped_at = Column(DateTime(timezone=True), nullable=True)
    delivered_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    cancel_reason = Column(Text, nullable=True)

    customer = relationship("User")
    voucher = relationship("Voucher")
    items = relationship("OrderItem", back_populates="order", order_by="OrderItem.id")
    timeline = relationship("OrderTimeline", back_populates="order", order_by="OrderTimeline.id")


class OrderItem(Base):
    """Позиция заказа. Название, SKU и цена - снимок каталога на момент покупки."""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey("products.id"), nullable=False)
    variant_id = Column(Integer, ForeignKey("product_variants.id"), nullable=True)

    product_name = Column(String, nullable=False)
    variant_name = Column(String, nullable=True)
    sku = Column(String, nullable=True)
    price = Column(BigInteger, nullable=False)
    quantity = Column(Integer, nullable=False)
    total = Column(BigInteger, nullable=False)

    order = relationship("Order", back_populates="items")


class OrderTimeline(Base):
    __tablename__ = "order_timeline"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(Integer, ForeignKey("orders.id"), nullable=False, index=True)

    # Статус заказа либо служебная метка, например 'PAYMENT_CONFIRMED'
    status = Column(String, nullable=False)
    note = Column(Text, nullable=True)
    created_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    order = relationship("Order", back_populates="timeline")


class OrderSequence(Base):
    """Счетчик номеров заказов на каждый день. Строка блокируется на время генерации номера."""
    __tablename__ = "order_sequences"

    id = Column(Integer, primary_key=True)
    day = Column(Date, unique=True, nullable=False)
    last_value = Column(Integer, nullable=False, default=0)
