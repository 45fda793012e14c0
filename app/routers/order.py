# app/routers/order.py
from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session
from typing import Optional

from app.core.limiter import limiter
from app.dependencies import get_current_user, get_db, get_optional_current_user
from app.models.user import User
from app.schemas.order import OrderCancelRequest, OrderCreate, OrderRead, OrderTracking, PaginatedOrders
from app.schemas.payment import PaymentInfo, PaymentStatusRead
from app.services import order as order_service
from app.services import order_lifecycle as lifecycle_service
from app.services import payment as payment_service

router = APIRouter()


@router.post("/orders", response_model=OrderRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("10/minute")
async def create_new_order(
    request: Request,
    order_data: OrderCreate,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_current_user)
):
    """
    Оформление заказа. Гости тоже могут заказывать, но баллы списываются
    только у авторизованного пользователя.
    """
    return await order_service.create_order(db, order_data, current_user)


# /orders/my объявлен раньше /orders/{order_id}
@router.get("/orders/my", response_model=PaginatedOrders)
def get_my_orders(
    page: int = Query(1, ge=1),
    size: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return order_service.get_user_orders(db, current_user, page, size)


@router.get("/orders/{order_id}", response_model=OrderRead)
def get_single_order(
    order_id: int,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_current_user)
):
    return order_service.get_order_details(db, order_id, current_user)


@router.get("/orders/{order_number}/tracking", response_model=OrderTracking)
def track_order(order_number: str, db: Session = Depends(get_db)):
    """Публичное отслеживание по номеру заказа."""
    return order_service.get_order_tracking(db, order_number)


@router.put("/orders/{order_id}/cancel", response_model=OrderRead)
async def cancel_user_order(
    order_id: int,
    cancel_data: OrderCancelRequest | None = None,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_current_user)
):
    reason = cancel_data.reason if cancel_data else None
    return await lifecycle_service.cancel_order(db, order_id, reason, current_user)


@router.get("/orders/{order_id}/payment-status", response_model=PaymentStatusRead)
def get_order_payment_status(order_id: int, db: Session = Depends(get_db)):
    return payment_service.get_payment_status(db, order_id)


@router.get("/orders/{order_id}/payment-info", response_model=PaymentInfo)
def get_order_payment_info(order_id: int, db: Session = Depends(get_db)):
    """Реквизиты и QR для оплаты переводом."""
    return payment_service.get_order_payment_info(db, order_id)
