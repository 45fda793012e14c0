# app/services/notification_cleanup.py
import logging
from app.db.session import SessionLocal
from app.crud import notification as crud_notification

logger = logging.getLogger(__name__)

DELETE_READ_NOTIFICATIONS_AFTER_DAYS = 30
DELETE_ANY_NOTIFICATION_AFTER_DAYS = 90


def cleanup_old_notifications_task():
    """
    Плановая чистка: уведомления клиентов по "умным" правилам
    и прочитанные записи входящих админки.
    """
    logger.info("--- Starting scheduled job: Cleanup of Old Notifications ---")
    with SessionLocal() as db:
        try:
            deleted_count = crud_notification.smart_delete_old_notifications(
                db,
                read_older_than_days=DELETE_READ_NOTIFICATIONS_AFTER_DAYS,
                any_older_than_days=DELETE_ANY_NOTIFICATION_AFTER_DAYS
            )
            deleted_inbox = crud_notification.delete_old_read_admin_notifications(
                db, older_than_days=DELETE_READ_NOTIFICATIONS_AFTER_DAYS
            )
            if deleted_count or deleted_inbox:
                logger.info(f"Deleted {deleted_count} customer notifications and {deleted_inbox} admin inbox entries.")
            else:
                logger.info("No old notifications to delete.")
        except Exception:
            logger.error("An error occurred during notification cleanup task", exc_info=True)
            db.rollback()
    logger.info("--- Finished scheduled job: Cleanup of Old Notifications ---")
