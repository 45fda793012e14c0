# app/routers/admin/orders.py

import logging
from datetime import date

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.dependencies import get_admin_user, get_db
from app.models.user import User
from app.schemas.order import (
    OrderRead,
    OrderStatus,
    OrderStatusUpdate,
    OrderTimelineCreate,
    PaginatedOrders,
    PaymentStatus,
)
from app.services import order as order_service
from app.services import order_lifecycle as lifecycle_service

logger = logging.getLogger(__name__)

# Префикс /orders добавляется в admin/__init__.py
router = APIRouter()


@router.get("", response_model=PaginatedOrders)
def get_orders_list(
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    status: OrderStatus | None = Query(default=None),
    payment_status: PaymentStatus | None = Query(default=None),
    search: str | None = Query(default=None, description="Поиск по номеру заказа, имени или телефону"),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    db: Session = Depends(get_db)
):
    """[АДМИН] Пагинированный список заказов с фильтрами."""
    filters = {
        "status": status,
        "payment_status": payment_status,
        "search": search,
        "date_from": date_from,
        "date_to": date_to,
    }
    active_filters = {k: v for k, v in filters.items() if v}
    return order_service.get_orders_for_admin(db, page, size, **active_filters)


@router.get("/{order_id}", response_model=OrderRead)
def get_order_details_endpoint(order_id: int, db: Session = Depends(get_db)):
    return order_service.get_admin_order_details(db, order_id)


@router.put("/{order_id}/status", response_model=OrderRead)
async def update_order_status_endpoint(
    order_id: int,
    status_update: OrderStatusUpdate,
    db: Session = Depends(get_db),
    admin_user: User = Depends(get_admin_user)
):
    """[АДМИН] Смена статуса по графу переходов. Недопустимый переход - 400."""
    return await lifecycle_service.update_status(
        db, order_id, status_update.status, note=status_update.note, actor_id=admin_user.id
    )


@router.post("/{order_id}/timeline", response_model=OrderRead, status_code=status.HTTP_201_CREATED)
def add_timeline_entry_endpoint(
    order_id: int,
    timeline_data: OrderTimelineCreate,
    db: Session = Depends(get_db),
    admin_user: User = Depends(get_admin_user)
):
    """[АДМИН] Пометка в истории заказа без смены статуса."""
    return lifecycle_service.add_timeline(
        db, order_id, timeline_data.status, note=timeline_data.note, actor_id=admin_user.id
    )
