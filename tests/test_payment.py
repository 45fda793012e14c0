# tests/test_payment.py

from datetime import datetime, timezone

import pytest
from fastapi import HTTPException

from app.schemas.payment import SepayWebhookPayload
from app.services import order as order_service
from app.services import payment as payment_service

from factories import order_data

pytestmark = pytest.mark.asyncio


def _webhook(content: str, amount: int, **overrides) -> SepayWebhookPayload:
    data = {
        "id": 92704,
        "gateway": "MBBank",
        "transactionDate": "2026-01-15 10:30:00",
        "accountNumber": "0123456789",
        "transferType": "in",
        "transferAmount": amount,
        "content": content,
        "referenceCode": "FT26015123456",
    }
    data.update(overrides)
    return SepayWebhookPayload(**data)

@pytest.fixture
async def qr_order(db_session, customer, shirt):
    return await order_service.create_order(
        db_session, order_data([{"product_id": shirt.id, "quantity": 2}], payment_method="SEPAY_QR"), customer
    )


async def test_extract_order_number():
    assert payment_service.extract_order_number("PC ENZ-20260115-0007 chuyen tien") == "ENZ-20260115-0007"
    assert payment_service.extract_order_number("MBVCB.123.ENZ-20260115-0012.CT tu 0123") == "ENZ-20260115-0012"
    assert payment_service.extract_order_number("ENZ-2026-0001") is None
    assert payment_service.extract_order_number(None) is None

async def test_verify_webhook_api_key():
    assert payment_service.verify_webhook("Apikey test-sepay-key") is True
    assert payment_service.verify_webhook("apikey   test-sepay-key") is True
    assert payment_service.verify_webhook("Apikey wrong") is False
    assert payment_service.verify_webhook(None) is False

async def test_payment_info_contains_qr(qr_order):
    info = payment_service.get_payment_info(qr_order.order_number, qr_order.total)

    assert info.amount == 430_000
    assert info.content == f"PC {qr_order.order_number}"
    assert info.qr_url.startswith("https://qr.sepay.vn/img?")
    assert "acc=0123456789" in info.qr_url
    assert "amount=430000" in info.qr_url
    assert f"des=PC+{qr_order.order_number}" in info.qr_url

async def test_payment_info_only_for_bank_transfer(db_session, customer, shirt):
    cod_order = await order_service.create_order(
        db_session, order_data([{"product_id": shirt.id, "quantity": 1}]), customer
    )
    with pytest.raises(HTTPException) as exc_info:
        payment_service.get_order_payment_info(db_session, cod_order.id)
    assert exc_info.value.status_code == 400

async def test_transaction_date_is_shop_local_time():
    parsed = payment_service.parse_transaction_date("2026-01-15 10:30:00")
    assert parsed == datetime(2026, 1, 15, 3, 30, tzinfo=timezone.utc)

    fallback = payment_service.parse_transaction_date("not a date")
    assert fallback.tzinfo is not None

async def test_confirm_payment_is_idempotent(db_session, qr_order, mock_notifications, drain_background):
    paid_at = datetime(2026, 1, 15, 3, 30, tzinfo=timezone.utc)

    first = await payment_service.confirm_payment(db_session, qr_order.id, "TX-1", paid_at)
    second = await payment_service.confirm_payment(db_session, qr_order.id, "TX-2", paid_at)
    await drain_background()

    assert first.payment_status == second.payment_status == "PAID"
    assert second.payment_tx_id == "TX-1"
    assert [entry.status for entry in second.timeline].count("PAYMENT_CONFIRMED") == 1
    mock_notifications["send_payment_success"].assert_awaited_once()

async def test_webhook_confirms_payment(db_session, qr_order):
    response = await payment_service.process_sepay_webhook(
        db_session, _webhook(f"PC {qr_order.order_number}", 430_000)
    )
    assert response.success is True
    assert response.message == "Payment confirmed"

    status_read = payment_service.get_payment_status(db_session, qr_order.id)
    assert status_read.payment_status == "PAID"
    assert status_read.paid_at is not None

async def test_webhook_uses_reference_code_without_id(db_session, qr_order):
    await payment_service.process_sepay_webhook(
        db_session, _webhook(f"PC {qr_order.order_number}", 430_000, id=None)
    )
    db_session.expire_all()
    assert payment_service.get_payment_status(db_session, qr_order.id).payment_status == "PAID"
    details = order_service.get_admin_order_details(db_session, qr_order.id)
    assert details.payment_tx_id == "FT26015123456"

async def test_webhook_ignores_underpayment(db_session, qr_order):
    response = await payment_service.process_sepay_webhook(
        db_session, _webhook(f"PC {qr_order.order_number}", 429_999)
    )
    assert response.success is True
    assert response.message == "Transfer amount is less than order total"
    assert payment_service.get_payment_status(db_session, qr_order.id).payment_status == "PENDING"

@pytest.mark.parametrize("payload, message", [
    ({"content": "PC ENZ-20260115-0001", "transferType": "out"}, "Skipped non-incoming transfer"),
    ({"content": "chuyen tien an trua"}, "No order number found in transfer content"),
    ({"content": "PC ENZ-20990101-9999"}, "Order not found or already processed"),
])
async def test_webhook_noops(db_session, payload, message):
    content = payload.pop("content")
    response = await payment_service.process_sepay_webhook(db_session, _webhook(content, 1_000_000, **payload))
    assert response.success is True
    assert response.message == message

async def test_webhook_falls_back_to_description(db_session, qr_order):
    response = await payment_service.process_sepay_webhook(
        db_session, _webhook("", 430_000, description=f"BankAPINotify PC {qr_order.order_number}")
    )
    assert response.message == "Payment confirmed"
