# app/crud/order.py
from datetime import date, datetime, time, timedelta, timezone
from typing import List
from zoneinfo import ZoneInfo

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, selectinload

from app.core.config import settings
from app.models.order import Order, OrderSequence, OrderTimeline, VOUCHER_RELEASING_STATUSES


def _shop_now(now: datetime | None = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(ZoneInfo(settings.SHOP_TIMEZONE))

# --- Номер заказа ---

def next_order_number(db: Session, now: datetime | None = None) -> str:
    """
    Выдает следующий номер вида ENZ-YYYYMMDD-NNNN. Должна вызываться внутри транзакции
    оформления заказа: строка счетчика дня блокируется до commit/rollback.
    При первом обращении за день счетчик засевается максимальным существующим номером.
    Уникальный индекс на order_number остается последней защитой от дублей.
    """
    local_now = _shop_now(now)
    day = local_now.date()
    prefix = f"{settings.ORDER_NUMBER_PREFIX}-{local_now.strftime('%Y%m%d')}-"

    sequence = db.query(OrderSequence).filter(OrderSequence.day == day).with_for_update().first()
    if sequence is None:
        last_number = db.query(func.max(Order.order_number)).filter(
            Order.order_number.like(f"{prefix}%")
        ).scalar()
        last_value = int(last_number[len(prefix):]) if last_number else 0
        sequence = OrderSequence(day=day, last_value=last_value)
        db.add(sequence)
        db.flush()

    sequence.last_value += 1
    db.flush()
    return f"{prefix}{sequence.last_value:04d}"

# --- Чтение ---

def get_order(db: Session, order_id: int) -> Order | None:
    return db.query(Order).options(
        selectinload(Order.items), selectinload(Order.timeline)
    ).filter(Order.id == order_id).first()

def get_order_for_update(db: Session, order_id: int) -> Order | None:
    """Загружает заказ с блокировкой строки (смена статуса, подтверждение оплаты)."""
    return db.query(Order).filter(Order.id == order_id).with_for_update().first()

def get_order_by_number(db: Session, order_number: str) -> Order | None:
    return db.query(Order).options(
        selectinload(Order.items), selectinload(Order.timeline)
    ).filter(Order.order_number == order_number).first()

def get_user_orders(db: Session, user_id: int, skip: int = 0, limit: int = 10) -> List[Order]:
    return db.query(Order).options(selectinload(Order.items), selectinload(Order.timeline)).filter(
        Order.customer_id == user_id
    ).order_by(Order.created_at.desc(), Order.id.desc()).offset(skip).limit(limit).all()

def count_user_orders(db: Session, user_id: int) -> int:
    return db.query(Order).filter(Order.customer_id == user_id).count()

def _admin_filtered_query(
    db: Session,
    status: str | None = None,
    payment_status: str | None = None,
    search: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
):
    query = db.query(Order)
    if status:
        query = query.filter(Order.status == status)
    if payment_status:
        query = query.filter(Order.payment_status == payment_status)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(
            Order.order_number.ilike(pattern),
            Order.shipping_name.ilike(pattern),
            Order.shipping_phone.ilike(pattern),
            Order.shipping_email.ilike(pattern),
        ))
    if date_from:
        query = query.filter(Order.created_at >= datetime.combine(date_from, time.min, tzinfo=timezone.utc))
    if date_to:
        # Включительно: до начала следующего дня
        query = query.filter(Order.created_at < datetime.combine(date_to + timedelta(days=1), time.min, tzinfo=timezone.utc))
    return query

def get_orders(db: Session, skip: int = 0, limit: int = 20, **filters) -> List[Order]:
    query = _admin_filtered_query(db, **filters).options(selectinload(Order.items), selectinload(Order.timeline))
    return query.order_by(Order.created_at.desc(), Order.id.desc()).offset(skip).limit(limit).all()

def count_orders(db: Session, **filters) -> int:
    return _admin_filtered_query(db, **filters).count()

def count_user_voucher_usage(db: Session, user_id: int, voucher_id: int) -> int:
    """Сколько заказов пользователя использовали ваучер (отмененные и возвращенные не считаются)."""
    return db.query(Order).filter(
        Order.customer_id == user_id,
        Order.voucher_id == voucher_id,
        Order.status.notin_(VOUCHER_RELEASING_STATUSES)
    ).count()

def count_orders_with_voucher(db: Session, voucher_id: int) -> int:
    """Все заказы со ссылкой на ваучер, включая отмененные."""
    return db.query(Order).filter(Order.voucher_id == voucher_id).count()

# --- Таймлайн ---

def add_timeline_entry(db: Session, order_id: int, status: str, note: str | None = None, created_by: int | None = None) -> OrderTimeline:
    """Добавляет запись в таймлайн заказа. Требует внешнего вызова db.commit()."""
    entry = OrderTimeline(order_id=order_id, status=status, note=note, created_by=created_by)
    db.add(entry)
    return entry
