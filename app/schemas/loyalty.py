# app/schemas/loyalty.py
from pydantic import BaseModel, Field
from datetime import datetime
from typing import Literal

from app.schemas.common import PaginatedResponse

class LoyaltyTransaction(BaseModel):
    id: int
    points: int
    type: Literal["EARN", "REDEEM", "ADMIN_ADJUST"]
    description: str
    order_id: int | None = None
    created_at: datetime
    expires_at: datetime | None = None

    class Config:
        from_attributes = True

class PaginatedLoyaltyHistory(PaginatedResponse[LoyaltyTransaction]):
    pass

class LoyaltyBalance(BaseModel):
    total_earned: int
    total_redeemed: int
    current_balance: int
    tier: str
    tier_multiplier: float
    tier_free_shipping: bool
    next_tier: str | None  # null, если достигнут максимальный уровень
    points_to_next_tier: int

class LoyaltyAdjustRequest(BaseModel):
    user_id: int
    # Положительное - начислить, отрицательное - списать
    points: int = Field(..., description="Количество баллов (не ноль)")
    reason: str = Field(..., min_length=1)
