# app/models/user.py

from sqlalchemy import Column, Integer, String, Boolean, BIGINT, DateTime, func
from app.db.session import Base

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=True)
    full_name = Column(String, nullable=True)
    phone = Column(String, nullable=True)

    # 'CUSTOMER', 'STAFF', 'ADMIN'
    role = Column(String, default="CUSTOMER", nullable=False, server_default='CUSTOMER')
    is_active = Column(Boolean, default=True, nullable=False, server_default='true')

    # Привязка к Telegram необязательна: уведомления в бот шлем только тем, у кого она есть
    telegram_id = Column(BIGINT, unique=True, index=True, nullable=True)
    bot_accessible = Column(Boolean, default=True, nullable=False, server_default='true')

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
