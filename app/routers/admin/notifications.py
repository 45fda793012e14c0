# app/routers/admin/notifications.py

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.dependencies import get_db
from app.schemas.notification import AdminNotification, PaginatedAdminNotifications
from app.services import admin_notifications as admin_notifications_service

router = APIRouter()


@router.get("", response_model=PaginatedAdminNotifications)
def get_inbox(
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    unread_only: bool = Query(False),
    db: Session = Depends(get_db)
):
    """[АДМИН] Входящие: новые заказы, оплаты, отмены."""
    return admin_notifications_service.get_inbox(db, page, size, unread_only)


@router.put("/{notification_id}/read", response_model=AdminNotification)
def mark_notification_as_read(notification_id: int, db: Session = Depends(get_db)):
    return admin_notifications_service.mark_as_read(db, notification_id)
