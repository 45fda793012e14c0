# app/crud/notification.py
from sqlalchemy.orm import Session
from sqlalchemy import or_
from app.models.notification import AdminNotification, Notification
from typing import List
from datetime import datetime, timedelta, timezone

def create_notification(
    db: Session,
    user_id: int,
    type: str,
    title: str,
    message: str | None = None,
    related_entity_id: str | None = None,
) -> Notification:
    """Создает новое уведомление для пользователя."""
    db_notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        related_entity_id=related_entity_id,
    )
    db.add(db_notification)
    db.commit()
    db.refresh(db_notification)
    return db_notification

def get_notification_by_type_and_entity(
    db: Session,
    user_id: int,
    type: str,
    related_entity_id: str
) -> Notification | None:
    """
    Ищет конкретное уведомление для пользователя, чтобы избежать дубликатов.
    """
    return db.query(Notification).filter_by(
        user_id=user_id,
        type=type,
        related_entity_id=related_entity_id
    ).first()

def smart_delete_old_notifications(
    db: Session,
    read_older_than_days: int,
    any_older_than_days: int
) -> int:
    """Удаляет уведомления по "умным" правилам."""
    now = datetime.now(timezone.utc)
    read_threshold = now - timedelta(days=read_older_than_days)
    any_threshold = now - timedelta(days=any_older_than_days)

    result = db.query(Notification).filter(
        or_(
            (Notification.is_read == True) & (Notification.created_at < read_threshold),
            Notification.created_at < any_threshold,
        )
    ).delete(synchronize_session=False)

    db.commit()
    return result

# --- Входящие админки ---

def create_admin_notification(db: Session, subject: str, body: str, meta: dict | None = None) -> AdminNotification:
    db_item = AdminNotification(subject=subject, body=body, meta=meta, status="UNREAD")
    db.add(db_item)
    db.commit()
    db.refresh(db_item)
    return db_item

def get_admin_notifications(
    db: Session,
    skip: int = 0,
    limit: int = 20,
    unread_only: bool = False
) -> List[AdminNotification]:
    query = db.query(AdminNotification)
    if unread_only:
        query = query.filter(AdminNotification.status == "UNREAD")
    return query.order_by(AdminNotification.created_at.desc(), AdminNotification.id.desc()).offset(skip).limit(limit).all()

def count_admin_notifications(db: Session, unread_only: bool = False) -> int:
    query = db.query(AdminNotification)
    if unread_only:
        query = query.filter(AdminNotification.status == "UNREAD")
    return query.count()

def mark_admin_notification_as_read(db: Session, notification_id: int) -> AdminNotification | None:
    db_item = db.get(AdminNotification, notification_id)
    if not db_item:
        return None
    db_item.status = "READ"
    db.commit()
    db.refresh(db_item)
    return db_item

def delete_old_read_admin_notifications(db: Session, older_than_days: int) -> int:
    """Удаляет прочитанные записи входящих старше указанного срока."""
    threshold = datetime.now(timezone.utc) - timedelta(days=older_than_days)
    result = db.query(AdminNotification).filter(
        AdminNotification.status == "READ",
        AdminNotification.created_at < threshold
    ).delete(synchronize_session=False)
    db.commit()
    return result
