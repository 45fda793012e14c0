# app/schemas/order.py
from pydantic import BaseModel, Field
from typing import List, Literal
from datetime import datetime

from app.schemas.common import PaginatedResponse

OrderStatus = Literal["PENDING", "CONFIRMED", "PROCESSING", "SHIPPING", "DELIVERED", "CANCELLED", "REFUNDED"]
PaymentStatus = Literal["PENDING", "PAID", "FAILED"]
PaymentMethod = Literal["COD", "SEPAY_QR"]


# --- Запросы ---

class OrderItemCreate(BaseModel):
    product_id: int
    variant_id: int | None = None
    quantity: int = Field(..., ge=1)

class OrderCreate(BaseModel):
    # Цены клиент не передает: все суммы считаются по каталогу
    items: List[OrderItemCreate]
    shipping_name: str = Field(..., min_length=1)
    shipping_phone: str = Field(..., min_length=1)
    shipping_email: str | None = None
    shipping_province: str
    shipping_district: str
    shipping_ward: str
    shipping_address: str
    note: str | None = None
    payment_method: PaymentMethod
    voucher_code: str | None = None
    points_to_redeem: int = Field(0, ge=0)

class OrderStatusUpdate(BaseModel):
    status: OrderStatus
    note: str | None = None

class OrderTimelineCreate(BaseModel):
    status: str = Field(..., min_length=1)
    note: str | None = None

class OrderCancelRequest(BaseModel):
    reason: str | None = None


# --- Ответы ---

class OrderItemRead(BaseModel):
    id: int
    product_id: int
    variant_id: int | None = None
    product_name: str
    variant_name: str | None = None
    sku: str | None = None
    price: int
    quantity: int
    total: int

    class Config:
        from_attributes = True

class OrderTimelineRead(BaseModel):
    id: int
    status: str
    note: str | None = None
    created_by: int | None = None
    created_at: datetime

    class Config:
        from_attributes = True

class OrderRead(BaseModel):
    """Полный снимок заказа. Используется и в ответах API, и как полезная нагрузка уведомлений."""
    id: int
    order_number: str
    customer_id: int | None = None
    status: OrderStatus
    payment_status: PaymentStatus
    payment_method: PaymentMethod

    subtotal: int
    discount_amount: int
    shipping_fee: int
    total: int
    loyalty_points_redeemed: int = 0
    voucher_id: int | None = None

    shipping_name: str
    shipping_phone: str
    shipping_email: str | None = None
    shipping_province: str
    shipping_district: str
    shipping_ward: str
    shipping_address: str
    note: str | None = None

    payment_tx_id: str | None = None
    created_at: datetime
    paid_at: datetime | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancel_reason: str | None = None

    items: List[OrderItemRead] = []
    timeline: List[OrderTimelineRead] = []

    class Config:
        from_attributes = True

class OrderTracking(BaseModel):
    """Публичное отслеживание по номеру: без контактных данных покупателя."""
    order_number: str
    status: OrderStatus
    payment_status: PaymentStatus
    total: int
    created_at: datetime
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    items: List[OrderItemRead] = []
    timeline: List[OrderTimelineRead] = []

    class Config:
        from_attributes = True

class PaginatedOrders(PaginatedResponse[OrderRead]):
    pass
