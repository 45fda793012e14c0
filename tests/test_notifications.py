# tests/test_notifications.py

from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from app.bot.services import notification as notification_service
from app.core.config import settings
from app.models.notification import Notification
from app.schemas.order import OrderRead

from factories import make_user

pytestmark = pytest.mark.asyncio


@pytest.fixture
def telegram(mocker, mock_notifications):
    # Здесь проверяются сами уведомления: снимаем подмены из conftest, мокаем только Bot API
    mocker.stopall()
    return mocker.patch.object(notification_service.bot, "send_message", new_callable=AsyncMock)


def _order(customer_id: int | None, **overrides) -> OrderRead:
    data = {
        "id": 1,
        "order_number": "ENZ-20260115-0001",
        "customer_id": customer_id,
        "status": "PENDING",
        "payment_status": "PENDING",
        "payment_method": "COD",
        "subtotal": 400_000,
        "discount_amount": 0,
        "shipping_fee": 30_000,
        "total": 430_000,
        "shipping_name": "Nguyen <Van> A",
        "shipping_phone": "0900000001",
        "shipping_province": "Ho Chi Minh",
        "shipping_district": "Quan 1",
        "shipping_ward": "Ben Nghe",
        "shipping_address": "12 Le Loi",
        "created_at": datetime(2026, 1, 15, 3, 0, tzinfo=timezone.utc),
        "items": [{
            "id": 1, "product_id": 1, "product_name": "Ao thun", "price": 200_000, "quantity": 2, "total": 400_000,
        }],
    }
    data.update(overrides)
    return OrderRead(**data)


async def test_customer_gets_in_app_and_telegram_message(db_session, customer, telegram):
    await notification_service.send_order_confirmation(_order(customer.id))

    telegram.assert_awaited_once()
    assert telegram.await_args.kwargs["chat_id"] == customer.telegram_id
    assert "ENZ-20260115-0001" in telegram.await_args.kwargs["text"]

    stored = db_session.query(Notification).filter_by(user_id=customer.id).one()
    assert stored.type == "order_created"
    assert stored.related_entity_id == "ENZ-20260115-0001"

async def test_duplicate_notification_is_skipped(db_session, customer, telegram):
    order = _order(customer.id)
    await notification_service.send_shipping_update(order)
    await notification_service.send_shipping_update(order)

    telegram.assert_awaited_once()
    assert db_session.query(Notification).count() == 1

async def test_guest_order_has_no_customer_notification(db_session, telegram):
    await notification_service.send_delivery_confirmation(_order(None))

    telegram.assert_not_awaited()
    assert db_session.query(Notification).count() == 0

async def test_unreachable_bot_still_stores_notification(db_session, telegram):
    db_user = make_user(db_session, email="blocked@test.vn", telegram_id=222, bot_accessible=False)
    await notification_service.send_order_confirmation(_order(db_user.id))

    telegram.assert_not_awaited()
    assert db_session.query(Notification).filter_by(user_id=db_user.id).count() == 1

async def test_new_order_goes_to_admin_chat(telegram):
    await notification_service.send_new_order_to_admin(_order(None, payment_method="SEPAY_QR"))

    telegram.assert_awaited_once()
    kwargs = telegram.await_args.kwargs
    assert kwargs["chat_id"] == settings.ADMIN_CHAT_ID
    assert "ENZ-20260115-0001" in kwargs["text"]
    # Данные покупателя экранируются для HTML-разметки
    assert "Nguyen &lt;Van&gt; A" in kwargs["text"]

async def test_error_report_is_truncated_and_never_raises(telegram):
    await notification_service.send_error_to_admin("x" * 5000)
    assert len(telegram.await_args.kwargs["text"]) <= 4096

    telegram.side_effect = RuntimeError("telegram is down")
    await notification_service.send_error_to_admin("boom")
