# app/models/loyalty.py
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship


from app.db.session import Base

# Типы записей в журнале баллов
EARN = "EARN"
REDEEM = "REDEEM"
ADMIN_ADJUST = "ADMIN_ADJUST"


class LoyaltyTransaction(Base):
    """Запись журнала баллов. Никогда не изменяется и не удаляется: баланс - это свертка журнала."""
    __tablename__ = "loyalty_transactions"
    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    # Положительное число - начисление, отрицательное - списание
    points = Column(Integer, nullable=False)

    # 'EARN', 'REDEEM', 'ADMIN_ADJUST'
    type = Column(String, nullable=False)
    description = Column(String, nullable=False)

    order_id = Column(Integer, ForeignKey("orders.id"), nullable=True, index=True)
    user = relationship("User")
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=True)
