# app/main.py

import html
import traceback
import logging
from contextlib import asynccontextmanager
from fastapi.middleware.cors import CORSMiddleware
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

# Конфигурация и ядро
from app.core import background
from app.core.config import settings
from app.core.limiter import limiter
from app.core.logging_config import setup_logging
from app.core.redis import redis_client

# Роутеры FastAPI
from app.routers import order, voucher, loyalty, webhooks
from app.routers import admin as admin_router

from app.bot.services import notification as bot_notification_service
from app.services.notification_cleanup import cleanup_old_notifications_task

logger = logging.getLogger(__name__)
scheduler = AsyncIOScheduler()

STARTUP_LOCK_KEY = "app_startup_lock"

# --- Обработчик критических ошибок ---
async def unhandled_exception_handler(request: Request, exc: Exception):
    """
    Глобальный обработчик необработанных исключений.
    Логирует ошибку и отправляет traceback в админский чат.
    """
    logger.critical(f"Unhandled exception for request: {request.method} {request.url}", exc_info=True)

    error_details = html.escape("".join(traceback.format_exception(exc)))
    client = f"{request.client.host}:{request.client.port}" if request.client else "unknown"

    error_message = (
        f"🚨 <b>Critical API error</b>\n\n"
        f"<b>URL:</b> <code>{html.escape(request.method)} {html.escape(str(request.url))}</code>\n"
        f"<b>Client:</b> <code>{client}</code>\n\n"
        f"<b>Traceback:</b>\n<pre>{error_details}</pre>"
    )
    background.fire_and_forget(bot_notification_service.send_error_to_admin(error_message), name="error-to-admin")

    return JSONResponse(
        status_code=500,
        content={"detail": "Internal Server Error. The administrator has been notified."},
    )

# --- Lifespan Manager (запуск и остановка приложения) ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("Application lifespan startup...")

    # Блокировка через Redis: планировщик запускает только один воркер
    is_main_worker = await redis_client.set(STARTUP_LOCK_KEY, "1", ex=60, nx=True)

    if is_main_worker:
        logger.info("This is the main worker. Starting scheduler...")
        if not scheduler.running:
            scheduler.add_job(cleanup_old_notifications_task, 'cron', hour=5, minute=30, timezone=settings.SHOP_TIMEZONE)
            scheduler.start()
            logger.info("Scheduler started with background jobs.")
    else:
        logger.info("This is a secondary worker. Skipping scheduler setup.")

    yield

    # Даем фоновым уведомлениям дослаться
    await background.drain(timeout=10)

    if is_main_worker:
        logger.info("Main worker shutting down...")
        if scheduler.running:
            scheduler.shutdown()
            logger.info("Scheduler shut down.")
        await redis_client.delete(STARTUP_LOCK_KEY)
    else:
        logger.info("Secondary worker shutting down.")

# --- Создание FastAPI приложения ---
app = FastAPI(
    title="Shop Order Service",
    description="Checkout, order lifecycle, payments and loyalty for the shop",
    version="0.1.0",
    lifespan=lifespan
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(Exception, unhandled_exception_handler)

# --- Подключение роутеров FastAPI ---
api_router = APIRouter(prefix="/api/v1")

api_router.include_router(order.router, tags=["Orders"])
api_router.include_router(voucher.router, tags=["Vouchers"])
api_router.include_router(loyalty.router, tags=["Loyalty"])

# Админские эндпоинты
api_router.include_router(admin_router.router, prefix="/admin")

app.include_router(api_router)

# Вебхук SePay: /api/webhook/sepay
app.include_router(webhooks.router, prefix="/api", tags=["Webhooks"])
