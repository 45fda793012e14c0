# app/dependencies.py

import logging
from typing import Optional, Iterator
from contextlib import contextmanager

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from jose import JWTError, jwt

from app.core.config import settings
from app.crud import user as crud_user
from app.db.session import SessionLocal
from app.models.user import User

logger = logging.getLogger(__name__)

# --- Схемы аутентификации ---
strict_bearer_scheme = HTTPBearer(auto_error=False)
optional_bearer_scheme = HTTPBearer(auto_error=False)

STAFF_ROLES = ("ADMIN", "STAFF")

# --- Управление сессией БД ---
def get_db() -> Iterator[Session]:
    """Зависимость FastAPI: сессия БД на время запроса."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

@contextmanager
def get_db_context() -> Iterator[Session]:
    """
    Контекстный менеджер для получения сессии БД вне FastAPI (фоновые задачи, уведомления).
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

# --- Аутентификация ---

def _decode_user_id(token: str) -> int | None:
    """Достает ID пользователя из 'sub'. Невалидный токен - None."""
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except JWTError as e:
        logger.warning(f"JWT Error during token decoding: {e}")
        return None
    user_id = payload.get("sub")
    if user_id is None:
        logger.warning("Token payload is missing 'sub' (user_id).")
        return None
    try:
        return int(user_id)
    except (TypeError, ValueError):
        logger.warning(f"Token 'sub' is not a valid user ID: {user_id}")
        return None

def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(strict_bearer_scheme),
    db: Session = Depends(get_db)
) -> User:
    """
    ОБЯЗАТЕЛЬНАЯ зависимость.
    Требует валидный токен. Если его нет или он невалиден - 401.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if not credentials:
        raise credentials_exception

    user_id = _decode_user_id(credentials.credentials)
    if user_id is None:
        raise credentials_exception

    user = crud_user.get_user_by_id(db, user_id)
    if user is None or not user.is_active:
        logger.warning(f"User with ID {user_id} from token not found or inactive.")
        raise credentials_exception

    request.state.user = user
    logger.debug(f"Authenticated user ID: {user.id}")
    return user


def get_optional_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_bearer_scheme),
    db: Session = Depends(get_db)
) -> Optional[User]:
    """
    ОПЦИОНАЛЬНАЯ зависимость: гостевой checkout и публичные эндпоинты.
    Нет токена или он невалиден - None.
    """
    if not credentials:
        return None

    user_id = _decode_user_id(credentials.credentials)
    if user_id is None:
        return None

    user = crud_user.get_user_by_id(db, user_id)
    if user is None or not user.is_active:
        logger.warning(f"Optional user with ID {user_id} from token not found or inactive.")
        return None

    request.state.user = user
    return user


def get_admin_user(current_user: User = Depends(get_current_user)) -> User:
    """Пускает в админку только роли ADMIN и STAFF."""
    if current_user.role not in STAFF_ROLES:
        logger.warning(f"Permission denied for user {current_user.id} with role {current_user.role}.")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="You do not have permission to access this resource."
        )
    return current_user
