# app/services/loyalty.py

import logging
import math
from datetime import datetime, timedelta, timezone
from fastapi import HTTPException, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.crud import loyalty as crud_loyalty
from app.crud import user as crud_user
from app.models.loyalty import ADMIN_ADJUST, EARN, REDEEM, LoyaltyTransaction
from app.schemas.common import total_pages
from app.schemas.loyalty import LoyaltyBalance, PaginatedLoyaltyHistory
from app.services import pricing
from app.core.config import settings

logger = logging.getLogger(__name__)


class Tier(BaseModel):
    name: str
    min_points: int
    multiplier: float
    free_shipping: bool

# От младшего к старшему. Уровень определяется суммой заработанных за все время баллов.
TIERS = (
    Tier(name="Bac", min_points=0, multiplier=1, free_shipping=False),
    Tier(name="Vang", min_points=1000, multiplier=1.5, free_shipping=False),
    Tier(name="Kim Cuong", min_points=5000, multiplier=2, free_shipping=True),
)


def get_tier(total_earned: int) -> Tier:
    current = TIERS[0]
    for tier in TIERS:
        if total_earned >= tier.min_points:
            current = tier
    return current

def get_next_tier(total_earned: int) -> tuple[Tier | None, int]:
    """Следующий уровень и сколько баллов до него. На максимальном уровне - (None, 0)."""
    for tier in TIERS:
        if total_earned < tier.min_points:
            return tier, tier.min_points - total_earned
    return None, 0

def fold_ledger(transactions: list[LoyaltyTransaction]) -> tuple[int, int]:
    """
    Сворачивает журнал в (total_earned, total_redeemed).
    EARN суммируется со знаком (отрицательная запись - отзыв баллов за возврат заказа).
    REDEEM тоже со знаком: списание отрицательное, возврат списанных баллов при отмене
    положительный и уменьшает потраченное, а не увеличивает заработанное.
    ADMIN_ADJUST делится по знаку.
    """
    total_earned = 0
    total_redeemed = 0
    for t in transactions:
        if t.type == EARN:
            total_earned += t.points
        elif t.type == REDEEM:
            total_redeemed -= t.points
        elif t.type == ADMIN_ADJUST:
            if t.points > 0:
                total_earned += t.points
            else:
                total_redeemed += abs(t.points)
    return total_earned, total_redeemed

def _build_balance(total_earned: int, total_redeemed: int) -> LoyaltyBalance:
    tier = get_tier(total_earned)
    next_tier, points_to_next = get_next_tier(total_earned)
    return LoyaltyBalance(
        total_earned=total_earned,
        total_redeemed=total_redeemed,
        current_balance=total_earned - total_redeemed,
        tier=tier.name,
        tier_multiplier=tier.multiplier,
        tier_free_shipping=tier.free_shipping,
        next_tier=next_tier.name if next_tier else None,
        points_to_next_tier=points_to_next,
    )

def get_balance(db: Session, user_id: int) -> LoyaltyBalance:
    """Баланс, уровень и прогресс до следующего уровня. Только чтение, без блокировок."""
    transactions = crud_loyalty.get_all_user_transactions(db, user_id=user_id)
    return _build_balance(*fold_ledger(transactions))

def get_balance_for_update(db: Session, user_id: int) -> LoyaltyBalance:
    # Сначала блокируется строка пользователя, журнал читается уже после получения блокировки:
    # так второе списание видит запись, вставленную первым
    crud_user.get_user_for_update(db, user_id)
    transactions = crud_loyalty.get_all_user_transactions(db, user_id=user_id)
    return _build_balance(*fold_ledger(transactions))

def get_redemption_value(points: int) -> int:
    return pricing.redemption_value(points)

def earn_points(
    db: Session,
    user_id: int,
    base_points: int,
    description: str,
    order_id: int | None = None
) -> LoyaltyTransaction | None:
    """
    Начисляет баллы с множителем текущего уровня (по балансу ДО этой записи).
    Требует внешнего вызова db.commit().
    """
    balance = get_balance_for_update(db, user_id)
    tier = get_tier(balance.total_earned)
    points = math.floor(base_points * tier.multiplier)
    if points <= 0:
        logger.info(f"Nothing to earn for user {user_id}: base {base_points}, tier {tier.name}")
        return None

    expires_at = datetime.now(timezone.utc) + timedelta(days=settings.POINTS_LIFETIME_DAYS)
    transaction = crud_loyalty.create_transaction(
        db=db, user_id=user_id, points=points, type=EARN,
        description=description, order_id=order_id, expires_at=expires_at
    )
    db.flush()
    logger.info(f"Added {points} points to user {user_id} (tier {tier.name}, x{tier.multiplier}). Order: {order_id}")
    return transaction

def redeem_points(
    db: Session,
    user_id: int,
    points: int,
    description: str,
    order_id: int | None = None
) -> LoyaltyTransaction:
    """
    Безопасно списывает баллы, используя блокировку строк
    для предотвращения "гонки состояний". Требует внешнего вызова db.commit().
    """
    if points <= 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="So diem su dung phai lon hon 0")

    balance = get_balance_for_update(db, user_id)
    if points > balance.current_balance:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Khong du diem. So du hien tai: {balance.current_balance} diem"
        )

    transaction = crud_loyalty.create_transaction(
        db=db, user_id=user_id, points=-points, type=REDEEM,
        description=description, order_id=order_id
    )
    db.flush()
    logger.info(
        f"Redeemed {points} points for user {user_id}. "
        f"Balance before: {balance.current_balance}, after (uncommitted): {balance.current_balance - points}"
    )
    return transaction

def return_redeemed_points(db: Session, user_id: int, points: int, order_number: str, order_id: int | None = None) -> LoyaltyTransaction:
    """
    Возвращает баллы, списанные на отмененный заказ: положительная запись REDEEM,
    уровень не меняется. Требует внешнего вызова db.commit().
    """
    get_balance_for_update(db, user_id)
    transaction = crud_loyalty.create_transaction(
        db=db, user_id=user_id, points=points, type=REDEEM,
        description=f"Hoan diem cho don hang {order_number}", order_id=order_id
    )
    db.flush()
    logger.info(f"Returned {points} redeemed points to user {user_id} for order {order_number}")
    return transaction

def revoke_earned_points(db: Session, user_id: int, order_id: int, order_number: str) -> LoyaltyTransaction | None:
    """
    Отзывает баллы, начисленные за доставку возвращенного заказа: отрицательная запись EARN.
    Если часть баллов уже потрачена, отзывается только остаток баланса.
    Требует внешнего вызова db.commit().
    """
    balance = get_balance_for_update(db, user_id)
    earned = crud_loyalty.get_order_earned_points(db, user_id=user_id, order_id=order_id)
    points = min(earned, max(balance.current_balance, 0))
    if points <= 0:
        return None

    transaction = crud_loyalty.create_transaction(
        db=db, user_id=user_id, points=-points, type=EARN,
        description=f"Thu hoi diem don hang {order_number}", order_id=order_id
    )
    db.flush()
    if points < earned:
        logger.warning(f"Only {points} of {earned} earned points revoked from user {user_id} for order {order_number}")
    logger.info(f"Revoked {points} earned points from user {user_id} for refunded order {order_number}")
    return transaction

def adjust_points(db: Session, user_id: int, points: int, description: str) -> LoyaltyTransaction:
    """Ручная корректировка баллов администратором. Списание не может увести баланс в минус."""
    if points == 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="So diem dieu chinh khong duoc bang 0")

    user = crud_user.get_user_by_id(db, user_id)
    if not user:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Khong tim thay khach hang")
    if user.role != "CUSTOMER":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Chi co the dieu chinh diem cho khach hang")

    try:
        balance = get_balance_for_update(db, user_id)
        if points < 0 and balance.current_balance + points < 0:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Khong du diem de tru. So du hien tai: {balance.current_balance}"
            )
        transaction = crud_loyalty.create_transaction(
            db=db, user_id=user_id, points=points, type=ADMIN_ADJUST, description=description
        )
        db.commit()
        db.refresh(transaction)
    except Exception:
        db.rollback()
        raise

    logger.info(f"Admin adjusted loyalty points for user {user_id}: {points:+d} ({description})")
    return transaction

def get_history(db: Session, user_id: int, page: int = 1, size: int = 20) -> PaginatedLoyaltyHistory:
    skip = (page - 1) * size
    transactions = crud_loyalty.get_user_transactions(db, user_id=user_id, skip=skip, limit=size)
    total = crud_loyalty.count_user_transactions(db, user_id=user_id)
    return PaginatedLoyaltyHistory(
        total_items=total,
        total_pages=total_pages(total, size),
        current_page=page,
        size=size,
        items=transactions,
    )
