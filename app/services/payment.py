# app/services/payment.py

import hmac
import logging
import re
from datetime import datetime, timezone
from urllib.parse import urlencode
from zoneinfo import ZoneInfo
from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.bot.services import notification as notification_service
from app.core.background import fire_and_forget
from app.core.config import settings
from app.crud import order as crud_order
from app.models.order import PAYMENT_PAID
from app.schemas.order import OrderRead
from app.schemas.payment import PaymentInfo, PaymentStatusRead, SepayWebhookPayload, WebhookResponse
from app.services import admin_notifications

logger = logging.getLogger(__name__)

SEPAY_QR_BASE_URL = "https://qr.sepay.vn/img"
_APIKEY_PREFIX = re.compile(r"^Apikey\s+", re.IGNORECASE)


def _order_number_pattern() -> re.Pattern:
    return re.compile(rf"{re.escape(settings.ORDER_NUMBER_PREFIX)}-\d{{8}}-\d{{4}}")

# --- SePay ---

def extract_order_number(content: str | None) -> str | None:
    """Ищет номер заказа (ENZ-YYYYMMDD-NNNN) в назначении платежа. Возвращает первое совпадение."""
    if not content:
        return None
    match = _order_number_pattern().search(content)
    return match.group(0) if match else None

def verify_webhook(authorization: str | None) -> bool:
    """
    Проверяет заголовок 'Authorization: Apikey <key>'.
    Если ключ не настроен, проверка пропускается (только для разработки).
    """
    if not settings.SEPAY_API_KEY:
        logger.warning("SEPAY_API_KEY is not configured. Skipping SePay webhook verification.")
        return True
    if not authorization:
        return False
    provided_key = _APIKEY_PREFIX.sub("", authorization.strip())
    return hmac.compare_digest(provided_key.encode(), settings.SEPAY_API_KEY.encode())

def _transfer_content(order_number: str) -> str:
    return f"{settings.SEPAY_PREFIX} {order_number}"

def generate_qr_url(order_number: str, amount: int) -> str:
    params = urlencode({
        "acc": settings.SEPAY_ACCOUNT_NUMBER,
        "bank": settings.SEPAY_BANK_NAME,
        "amount": str(amount),
        "des": _transfer_content(order_number),
    })
    return f"{SEPAY_QR_BASE_URL}?{params}"

def get_payment_info(order_number: str, amount: int) -> PaymentInfo:
    """Реквизиты для перевода и ссылка на VietQR-картинку."""
    return PaymentInfo(
        bank_name=settings.SEPAY_BANK_NAME,
        account_number=settings.SEPAY_ACCOUNT_NUMBER,
        account_holder=settings.SEPAY_ACCOUNT_HOLDER,
        amount=amount,
        content=_transfer_content(order_number),
        qr_url=generate_qr_url(order_number, amount),
    )

def get_order_payment_info(db: Session, order_id: int) -> PaymentInfo:
    order = crud_order.get_order(db, order_id)
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Order with ID {order_id} not found")
    if order.payment_method != "SEPAY_QR":
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Order is not paid by bank transfer")
    return get_payment_info(order.order_number, order.total)

def parse_transaction_date(value: str | None) -> datetime:
    """SePay присылает локальное время магазина без зоны. Если даты нет или она битая - берем текущий момент."""
    if value:
        try:
            parsed = datetime.fromisoformat(value)
            if parsed.tzinfo is None:
                parsed = parsed.replace(tzinfo=ZoneInfo(settings.SHOP_TIMEZONE))
            return parsed.astimezone(timezone.utc)
        except ValueError:
            logger.warning(f"Unparseable SePay transactionDate '{value}', using current time.")
    return datetime.now(timezone.utc)

# --- Подтверждение оплаты ---

async def confirm_payment(db: Session, order_id: int, external_tx_id: str, paid_at: datetime) -> OrderRead:
    """
    Отмечает заказ оплаченным. Идемпотентна: повторный вызов для уже оплаченного
    заказа ничего не меняет. Строка заказа блокируется на время проверки.
    """
    try:
        order = crud_order.get_order_for_update(db, order_id)
        if not order:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Order with ID {order_id} not found")

        if order.payment_status == PAYMENT_PAID:
            db.rollback()
            logger.warning(f"Order {order.order_number} already marked as paid. Skipping.")
            return OrderRead.model_validate(crud_order.get_order(db, order_id))

        order.payment_status = PAYMENT_PAID
        order.payment_tx_id = external_tx_id
        order.paid_at = paid_at
        crud_order.add_timeline_entry(
            db, order.id, status="PAYMENT_CONFIRMED",
            note=f"Payment confirmed via SePay (TX: {external_tx_id})"
        )
        db.commit()
    except HTTPException:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        logger.error(f"Failed to confirm payment for order {order_id}", exc_info=True)
        raise

    validated_order = OrderRead.model_validate(crud_order.get_order(db, order_id))
    logger.info(f"Payment confirmed for order {validated_order.order_number} (TX: {external_tx_id})")
    fire_and_forget(notification_service.send_payment_success(validated_order), name=f"payment-success:{validated_order.order_number}")
    fire_and_forget(admin_notifications.notify_payment_received(validated_order), name=f"inbox-payment:{validated_order.order_number}")
    return validated_order

async def process_sepay_webhook(db: Session, payload: SepayWebhookPayload) -> WebhookResponse:
    """
    Обрабатывает уведомление SePay о переводе. Всегда отвечает успехом,
    чтобы SePay не повторял доставку: спорные случаи только логируются.
    """
    logger.info(f"Received SePay webhook: id={payload.id}, amount={payload.transferAmount}, content='{payload.content}'")

    if payload.transferType != "in":
        logger.info(f"Skipping non-incoming transfer type: {payload.transferType}")
        return WebhookResponse(message="Skipped non-incoming transfer")

    order_number = extract_order_number(payload.content or payload.description or "")
    if not order_number:
        logger.warning(f"Could not extract order number from content: '{payload.content}'")
        return WebhookResponse(message="No order number found in transfer content")

    order = crud_order.get_order_by_number(db, order_number)
    if not order:
        logger.warning(f"SePay webhook references unknown order {order_number}")
        return WebhookResponse(message="Order not found or already processed")

    if payload.transferAmount < order.total:
        logger.warning(
            f"Transfer amount {payload.transferAmount} is less than order total {order.total} for order {order_number}"
        )
        return WebhookResponse(message="Transfer amount is less than order total")

    tx_id = str(payload.id or payload.referenceCode)
    try:
        await confirm_payment(db, order.id, tx_id, parse_transaction_date(payload.transactionDate))
    except Exception as e:
        logger.error(f"Error processing SePay webhook for order {order_number}: {e}", exc_info=True)
        return WebhookResponse(message="Order not found or already processed")

    return WebhookResponse(message="Payment confirmed")

def get_payment_status(db: Session, order_id: int) -> PaymentStatusRead:
    """Опрос статуса оплаты со страницы заказа."""
    order = crud_order.get_order(db, order_id)
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Order with ID {order_id} not found")
    return PaymentStatusRead.model_validate(order)
