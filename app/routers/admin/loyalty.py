# app/routers/admin/loyalty.py

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.dependencies import get_db
from app.schemas.loyalty import LoyaltyAdjustRequest, LoyaltyTransaction
from app.services import loyalty as loyalty_service

router = APIRouter()


@router.post("/adjust", response_model=LoyaltyTransaction, status_code=status.HTTP_201_CREATED)
def adjust_user_points(adjust_data: LoyaltyAdjustRequest, db: Session = Depends(get_db)):
    """[АДМИН] Ручное начисление (points > 0) или списание (points < 0) баллов."""
    return loyalty_service.adjust_points(db, adjust_data.user_id, adjust_data.points, adjust_data.reason)
