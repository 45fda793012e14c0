# tests/conftest.py
import os

# Переменные окружения должны быть выставлены до импорта app.*
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("TELEGRAM_BOT_TOKEN", "123456:test-token")
os.environ.setdefault("ADMIN_CHAT_ID", "-1001")
os.environ.setdefault("SQLALCHEMY_DATABASE_URI", "sqlite://")
os.environ.setdefault("SEPAY_API_KEY", "test-sepay-key")
os.environ.setdefault("SEPAY_BANK_NAME", "MBBank")
os.environ.setdefault("SEPAY_ACCOUNT_NUMBER", "0123456789")
os.environ.setdefault("SEPAY_ACCOUNT_HOLDER", "CONG TY TEST")

from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from app.bot.services import notification as notification_service
from app.core import background
from app.core.limiter import limiter
from app.db.session import Base, SessionLocal
from app.models import user, product, voucher, order, loyalty, notification  # noqa: F401
from app.models.product import Product
from app.models.user import User

from factories import auth_headers, make_product, make_user

# Лимиты живут в Redis, в тестах они не нужны
limiter.enabled = False

NOTIFICATION_FUNCTIONS = (
    "send_order_confirmation",
    "send_new_order_to_admin",
    "send_shipping_update",
    "send_delivery_confirmation",
    "send_order_cancellation",
    "send_payment_success",
    "send_points_earned",
    "send_low_stock_alert",
    "send_error_to_admin",
)


@pytest.fixture
def engine(tmp_path):
    """Файловая SQLite на каждый тест: фоновые задачи открывают свои сессии к той же БД."""
    test_engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=test_engine)
    SessionLocal.configure(bind=test_engine)
    yield test_engine
    Base.metadata.drop_all(bind=test_engine)
    test_engine.dispose()


@pytest.fixture
def db_session(engine) -> Session:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture(autouse=True)
def mock_notifications(mocker) -> dict:
    """Telegram в тестах не дергаем: все публичные уведомления заменены на AsyncMock."""
    return {
        name: mocker.patch.object(notification_service, name, new_callable=AsyncMock)
        for name in NOTIFICATION_FUNCTIONS
    }


@pytest.fixture(autouse=True)
async def drain_background(engine):
    """После каждого теста очередь фоновых задач пуста, пока БД еще жива."""
    yield background.drain
    await background.drain()


@pytest.fixture
async def client(engine):
    from app.main import app

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def customer(db_session) -> User:
    return make_user(db_session, email="customer@test.vn", full_name="Nguyen Van A", phone="0900000001", telegram_id=111)

@pytest.fixture
def other_customer(db_session) -> User:
    return make_user(db_session, email="other@test.vn", full_name="Tran Thi B", phone="0900000002")

@pytest.fixture
def admin_user(db_session) -> User:
    return make_user(db_session, email="admin@test.vn", full_name="Admin", role="ADMIN")

@pytest.fixture
def customer_headers(customer) -> dict:
    return auth_headers(customer)

@pytest.fixture
def admin_headers(admin_user) -> dict:
    return auth_headers(admin_user)

@pytest.fixture
def shirt(db_session) -> Product:
    return make_product(db_session)
