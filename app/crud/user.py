# app/crud/user.py
from sqlalchemy.orm import Session
from app.models.user import User


def get_user_by_id(db: Session, user_id: int) -> User | None:
    """Получает пользователя по его первичному ключу (ID в нашей БД)."""
    return db.query(User).filter(User.id == user_id).first()

def get_user_for_update(db: Session, user_id: int) -> User | None:
    """Блокирует строку пользователя до конца транзакции (SELECT ... FOR UPDATE)."""
    return db.query(User).filter(User.id == user_id).with_for_update().first()
