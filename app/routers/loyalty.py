# app/routers/loyalty.py
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.dependencies import get_current_user, get_db
from app.models.user import User
from app.schemas.loyalty import LoyaltyBalance, PaginatedLoyaltyHistory
from app.services import loyalty as loyalty_service

router = APIRouter()


@router.get("/loyalty/balance", response_model=LoyaltyBalance)
def get_my_balance(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    """Баланс, уровень и сколько осталось до следующего уровня."""
    return loyalty_service.get_balance(db, current_user.id)


@router.get("/loyalty/history", response_model=PaginatedLoyaltyHistory)
def get_my_history(
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return loyalty_service.get_history(db, current_user.id, page, size)
