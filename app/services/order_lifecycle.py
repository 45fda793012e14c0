# app/services/order_lifecycle.py
"""
Машина состояний заказа и ее побочные эффекты: остатки, ваучеры, баллы, уведомления.
Все изменения по заказу делаются в одной транзакции, уведомления и начисление
баллов за доставку уходят в фон уже после commit.
"""
import logging
from datetime import datetime, timezone
from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.bot.services import notification as notification_service
from app.core.background import fire_and_forget
from app.core.config import settings
from app.crud import order as crud_order
from app.crud import product as crud_product
from app.crud import voucher as crud_voucher
from app.dependencies import get_db_context
from app.models.order import (
    Order, PENDING, CONFIRMED, PROCESSING, SHIPPING, DELIVERED, CANCELLED, REFUNDED,
    COD, PAYMENT_PENDING, PAYMENT_PAID,
)
from app.models.user import User
from app.schemas.order import OrderRead
from app.services import admin_notifications
from app.services import loyalty as loyalty_service

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    PENDING: {CONFIRMED, CANCELLED},
    CONFIRMED: {PROCESSING, CANCELLED},
    PROCESSING: {SHIPPING, CANCELLED},
    SHIPPING: {DELIVERED},
    DELIVERED: {REFUNDED},
    CANCELLED: set(),
    REFUNDED: set(),
}

# Статусы, при переходе в которые возвращаются остатки, ваучер и списанные баллы
RESTORING_STATUSES = {CANCELLED, REFUNDED}


def can_transition(current: str, new: str) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, set())

def _load_order_for_update(db: Session, order_id: int) -> Order:
    order = crud_order.get_order_for_update(db, order_id)
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Order with ID {order_id} not found")
    return order

def _restore_order_effects(db: Session, order: Order):
    """
    Возвращает на склад остатки и sold_count, освобождает использование ваучера
    и возвращает баллы, списанные на этот заказ. При возврате (REFUNDED) еще и
    отзывает баллы, начисленные за доставку. Без commit.
    """
    for item in order.items:
        if item.variant_id is not None:
            crud_product.restore_variant_stock(db, item.variant_id, item.product_id, item.quantity)
        else:
            crud_product.restore_product_stock(db, item.product_id, item.quantity)

    if order.voucher_id:
        crud_voucher.decrement_used_count(db, order.voucher_id)

    if order.customer_id and order.loyalty_points_redeemed:
        loyalty_service.return_redeemed_points(
            db, user_id=order.customer_id, points=order.loyalty_points_redeemed,
            order_number=order.order_number, order_id=order.id
        )

    if order.status == REFUNDED and order.customer_id:
        loyalty_service.revoke_earned_points(
            db, user_id=order.customer_id, order_id=order.id, order_number=order.order_number
        )

    logger.info(f"Restored stock, voucher usage and points for order {order.order_number}")

def _apply_status(order: Order, new_status: str, note: str | None):
    now = datetime.now(timezone.utc)
    order.status = new_status
    if new_status == SHIPPING:
        order.shipped_at = now
    elif new_status == DELIVERED:
        order.delivered_at = now
        # Наложенный платеж считается оплаченным при доставке
        if order.payment_method == COD and order.payment_status == PAYMENT_PENDING:
            order.payment_status = PAYMENT_PAID
            order.paid_at = now
    elif new_status == CANCELLED:
        order.cancelled_at = now
        if note:
            order.cancel_reason = note

async def _earn_points_for_delivery(order: OrderRead):
    """Фоновое начисление баллов за доставленный заказ. Своя сессия БД."""
    base_points = order.total // settings.POINTS_PER_CURRENCY_UNIT
    if base_points <= 0 or order.customer_id is None:
        return

    with get_db_context() as db:
        try:
            transaction = loyalty_service.earn_points(
                db, user_id=order.customer_id, base_points=base_points,
                description=f"Tich diem don hang #{order.order_number}", order_id=order.id
            )
            db.commit()
            points_added = transaction.points if transaction else 0
        except Exception:
            db.rollback()
            raise

    if points_added > 0:
        await notification_service.send_points_earned(order.customer_id, points_added, order.order_number)

def _dispatch_status_side_effects(order: OrderRead):
    tag = order.order_number
    if order.status == SHIPPING:
        fire_and_forget(notification_service.send_shipping_update(order), name=f"shipping-update:{tag}")
    elif order.status == DELIVERED:
        fire_and_forget(notification_service.send_delivery_confirmation(order), name=f"delivery:{tag}")
        if order.customer_id:
            fire_and_forget(_earn_points_for_delivery(order), name=f"earn-points:{tag}")
    elif order.status == CANCELLED:
        fire_and_forget(notification_service.send_order_cancellation(order), name=f"cancellation:{tag}")
        fire_and_forget(admin_notifications.notify_order_cancelled(order), name=f"inbox-cancellation:{tag}")

async def update_status(
    db: Session,
    order_id: int,
    new_status: str,
    note: str | None = None,
    actor_id: int | None = None
) -> OrderRead:
    """Смена статуса заказа администратором. Недопустимый переход - 400."""
    try:
        order = _load_order_for_update(db, order_id)
        if not can_transition(order.status, new_status):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Cannot change order status from {order.status} to {new_status}"
            )

        previous_status = order.status
        _apply_status(order, new_status, note)
        crud_order.add_timeline_entry(db, order.id, status=new_status, note=note, created_by=actor_id)
        if new_status in RESTORING_STATUSES:
            _restore_order_effects(db, order)

        db.commit()
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        logger.error(f"Failed to update status of order {order_id} to {new_status}", exc_info=True)
        raise

    validated_order = OrderRead.model_validate(crud_order.get_order(db, order_id))
    logger.info(f"Order {validated_order.order_number} status changed: {previous_status} -> {new_status} by {actor_id}")
    _dispatch_status_side_effects(validated_order)
    return validated_order

async def cancel_order(
    db: Session,
    order_id: int,
    reason: str | None = None,
    current_user: User | None = None
) -> OrderRead:
    """Отмена заказа клиентом. Разрешена только для PENDING."""
    user_id = current_user.id if current_user else None
    try:
        order = _load_order_for_update(db, order_id)
        if order.status != PENDING:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Only orders with PENDING status can be cancelled"
            )
        if order.customer_id and order.customer_id != user_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only cancel your own orders")

        order.status = CANCELLED
        order.cancelled_at = datetime.now(timezone.utc)
        order.cancel_reason = reason or None
        crud_order.add_timeline_entry(
            db, order.id, status=CANCELLED, note=reason or "Order cancelled by user", created_by=user_id
        )
        _restore_order_effects(db, order)

        db.commit()
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        logger.error(f"Failed to cancel order {order_id}", exc_info=True)
        raise

    validated_order = OrderRead.model_validate(crud_order.get_order(db, order_id))
    logger.info(f"Order {validated_order.order_number} cancelled by user {user_id}")
    _dispatch_status_side_effects(validated_order)
    return validated_order

def add_timeline(
    db: Session,
    order_id: int,
    status_label: str,
    note: str | None = None,
    actor_id: int | None = None
) -> OrderRead:
    """Произвольная пометка в таймлайне. Статус заказа не меняется."""
    order = crud_order.get_order(db, order_id)
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Order with ID {order_id} not found")
    crud_order.add_timeline_entry(db, order.id, status=status_label, note=note, created_by=actor_id)
    db.commit()
    return OrderRead.model_validate(crud_order.get_order(db, order_id))
