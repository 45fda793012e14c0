# app/routers/admin/__init__.py

from fastapi import APIRouter, Depends
from app.dependencies import get_admin_user

from . import (
    orders,
    vouchers,
    loyalty,
    notifications,
)

# Зависимость get_admin_user применяется ко ВСЕМ эндпоинтам этого роутера:
# в админку пускаем только роли ADMIN и STAFF
router = APIRouter(
    tags=["Admin"],
    dependencies=[Depends(get_admin_user)]
)

# /admin/orders, /admin/orders/{id}, /admin/orders/{id}/status, /admin/orders/{id}/timeline
router.include_router(orders.router, prefix="/orders")

# /admin/vouchers, /admin/vouchers/{id}
router.include_router(vouchers.router, prefix="/vouchers")

# /admin/loyalty/adjust
router.include_router(loyalty.router, prefix="/loyalty")

# /admin/notifications, /admin/notifications/{id}/read
router.include_router(notifications.router, prefix="/notifications")
