# app/crud/loyalty.py

from typing import List
from sqlalchemy import func
from sqlalchemy.orm import Session
from datetime import datetime

from app.models.loyalty import EARN, LoyaltyTransaction

# --- Базовые CRUD-операции ---

def create_transaction(
    db: Session,
    user_id: int,
    points: int,
    type: str,
    description: str,
    order_id: int = None,
    expires_at: datetime = None,
) -> LoyaltyTransaction:
    """
    Создает объект транзакции и добавляет его в сессию.
    Требует внешнего вызова db.commit().
    """
    transaction = LoyaltyTransaction(
        user_id=user_id,
        points=points,
        type=type,
        description=description,
        order_id=order_id,
        expires_at=expires_at,
    )
    db.add(transaction)
    return transaction

def get_user_transactions(
    db: Session,
    user_id: int,
    skip: int = 0,
    limit: int = 20
) -> List[LoyaltyTransaction]:
    """Получает пагинированный список ВСЕХ транзакций пользователя (от новых к старым)."""
    return db.query(LoyaltyTransaction).filter(
        LoyaltyTransaction.user_id == user_id
    ).order_by(LoyaltyTransaction.created_at.desc(), LoyaltyTransaction.id.desc()).offset(skip).limit(limit).all()

def count_user_transactions(db: Session, user_id: int) -> int:
    """Подсчитывает общее количество транзакций у пользователя."""
    return db.query(LoyaltyTransaction).filter(LoyaltyTransaction.user_id == user_id).count()

def get_all_user_transactions(db: Session, user_id: int) -> List[LoyaltyTransaction]:
    """Все записи журнала пользователя в хронологическом порядке."""
    return db.query(LoyaltyTransaction).filter(
        LoyaltyTransaction.user_id == user_id
    ).order_by(LoyaltyTransaction.id.asc()).all()

def get_order_earned_points(db: Session, user_id: int, order_id: int) -> int:
    """Сумма EARN-записей пользователя по заказу (с учетом уже отозванных)."""
    total = db.query(func.sum(LoyaltyTransaction.points)).filter(
        LoyaltyTransaction.user_id == user_id,
        LoyaltyTransaction.order_id == order_id,
        LoyaltyTransaction.type == EARN
    ).scalar()
    return total or 0
