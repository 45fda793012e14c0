# app/models/notification.py
from sqlalchemy import JSON, Column, Integer, String, Text, ForeignKey, DateTime, func, Boolean
from app.db.session import Base
from sqlalchemy.orm import relationship

class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)

    # Тип уведомления: 'order_created', 'order_shipping', 'payment_success', etc.
    type = Column(String, nullable=False, index=True)
    title = Column(String, nullable=False)
    message = Column(Text, nullable=True)

    # ID связанной сущности (номер заказа)
    related_entity_id = Column(String, nullable=True)

    is_read = Column(Boolean, default=False, nullable=False, server_default='false')
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User")


class AdminNotification(Base):
    """Входящие админки: новые заказы, оплаты, отмены."""
    __tablename__ = "admin_notifications"

    id = Column(Integer, primary_key=True, index=True)
    subject = Column(String, nullable=False)
    body = Column(Text, nullable=False)
    meta = Column(JSON, nullable=True)

    # 'UNREAD' / 'READ'
    status = Column(String, nullable=False, default="UNREAD", server_default='UNREAD', index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
