# app/core/limiter.py

import logging
from typing import Optional

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import settings
from app.models.user import User

logger = logging.getLogger(__name__)


def key_func(request: Request) -> str:
    """
    Определяет, как идентифицировать запрос для применения лимита.
    Приоритет: ID пользователя (если авторизован) -> IP-адрес.
    """
    user: Optional[User] = getattr(request.state, "user", None)

    if user and user.id:
        return f"user:{user.id}"

    return get_remote_address(request)


# Счетчики хранятся в Redis, чтобы лимит был общим для всех воркеров
limiter = Limiter(
    key_func=key_func,
    storage_uri=settings.REDIS_URL,
    strategy="moving-window",
)
