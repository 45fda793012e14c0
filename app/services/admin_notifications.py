# app/services/admin_notifications.py
import logging
from sqlalchemy.orm import Session

from fastapi import HTTPException, status
from app.crud import notification as crud_notification
from app.dependencies import get_db_context
from app.schemas.common import total_pages
from app.schemas.notification import AdminNotification, PaginatedAdminNotifications
from app.schemas.order import OrderRead

logger = logging.getLogger(__name__)


def _money(amount: int) -> str:
    return f"{amount:,}".replace(",", ".") + "d"

def _create(subject: str, body: str, meta: dict):
    # Фоновая запись во входящие: собственная сессия, ошибки только логируются вызывающим кодом
    with get_db_context() as db:
        crud_notification.create_admin_notification(db, subject=subject, body=body, meta=meta)

async def notify_new_order(order: OrderRead):
    items_summary = ", ".join(f"{item.product_name} x{item.quantity}" for item in order.items)
    _create(
        subject=f"Don hang moi #{order.order_number}",
        body=(
            f"Khach hang: {order.shipping_name} - {order.shipping_phone}. "
            f"San pham: {items_summary}. Tong: {_money(order.total)}"
        ),
        meta={"order_id": order.id, "order_number": order.order_number},
    )

async def notify_payment_received(order: OrderRead):
    _create(
        subject=f"Thanh toan #{order.order_number}",
        body=f"Da nhan {_money(order.total)} qua SePay (TX: {order.payment_tx_id}).",
        meta={"order_id": order.id, "order_number": order.order_number, "tx_id": order.payment_tx_id},
    )

async def notify_order_cancelled(order: OrderRead):
    reason = f" Ly do: {order.cancel_reason}" if order.cancel_reason else ""
    _create(
        subject=f"Huy don #{order.order_number}",
        body=f"Don hang {order.order_number} cua {order.shipping_name} da bi huy.{reason}",
        meta={"order_id": order.id, "order_number": order.order_number},
    )

# --- API админки ---

def get_inbox(db: Session, page: int = 1, size: int = 20, unread_only: bool = False) -> PaginatedAdminNotifications:
    skip = (page - 1) * size
    items = crud_notification.get_admin_notifications(db, skip=skip, limit=size, unread_only=unread_only)
    total = crud_notification.count_admin_notifications(db, unread_only=unread_only)
    return PaginatedAdminNotifications(
        total_items=total,
        total_pages=total_pages(total, size),
        current_page=page,
        size=size,
        items=items,
    )

def mark_as_read(db: Session, notification_id: int) -> AdminNotification:
    item = crud_notification.mark_admin_notification_as_read(db, notification_id)
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return AdminNotification.model_validate(item)
