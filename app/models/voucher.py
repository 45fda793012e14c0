# app/models/voucher.py
from sqlalchemy import BigInteger, Boolean, Column, DateTime, Integer, String, Text, func

from app.db.session import Base

class Voucher(Base):
    __tablename__ = "vouchers"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, unique=True, index=True, nullable=False)  # всегда в верхнем регистре
    name = Column(String, nullable=False)
    description = Column(Text, nullable=True)

    # 'PERCENTAGE', 'FIXED_AMOUNT', 'FREE_SHIPPING'
    type = Column(String, nullable=False)
    value = Column(BigInteger, nullable=False, default=0)

    min_order_amount = Column(BigInteger, nullable=True)
    max_discount = Column(BigInteger, nullable=True)
    usage_limit = Column(Integer, nullable=True)
    per_user_limit = Column(Integer, nullable=False, default=1, server_default='1')  # 0 - без ограничения

    # Меняется только вместе с созданием/отменой заказа
    used_count = Column(Integer, nullable=False, default=0, server_default='0')

    start_date = Column(DateTime(timezone=True), nullable=False)
    end_date = Column(DateTime(timezone=True), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False, server_default='true')

    created_at = Column(DateTime(timezone=True), server_default=func.now())
