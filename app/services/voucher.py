# app/services/voucher.py

import logging
from datetime import datetime, timezone
from sqlalchemy.orm import Session

from app.crud import order as crud_order
from app.crud import voucher as crud_voucher
from app.models.voucher import Voucher
from app.schemas.voucher import VoucherBrief, VoucherValidation
from app.services import pricing

logger = logging.getLogger(__name__)


def format_vnd(amount: int) -> str:
    """1000000 -> '1.000.000' (вьетнамский формат разрядов)."""
    return f"{amount:,}".replace(",", ".")

def as_utc(value: datetime) -> datetime:
    # SQLite возвращает naive datetime: считаем его UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value

def _invalid(message: str) -> VoucherValidation:
    return VoucherValidation(valid=False, discount=0, message=message)

def check_voucher(
    db: Session,
    voucher: Voucher | None,
    subtotal: int,
    user_id: int | None = None,
    now: datetime | None = None
) -> VoucherValidation:
    """
    Проверяет уже загруженный ваучер по цепочке правил и считает скидку.
    Первая нарушенная проверка определяет сообщение. Ничего не меняет в БД.
    """
    if voucher is None:
        return _invalid("Voucher not found")

    if not voucher.is_active:
        return _invalid("Voucher is not active")

    now = now or datetime.now(timezone.utc)
    if now < as_utc(voucher.start_date) or now > as_utc(voucher.end_date):
        return _invalid("Voucher is expired or not yet valid")

    if voucher.usage_limit is not None and voucher.used_count >= voucher.usage_limit:
        return _invalid("Voucher usage limit reached")

    if voucher.min_order_amount is not None and subtotal < voucher.min_order_amount:
        return _invalid(f"Minimum order amount for this voucher is {format_vnd(voucher.min_order_amount)}")

    if user_id is not None and voucher.per_user_limit > 0:
        used_by_user = crud_order.count_user_voucher_usage(db, user_id=user_id, voucher_id=voucher.id)
        if used_by_user >= voucher.per_user_limit:
            return _invalid("You have reached the usage limit for this voucher")

    if voucher.type == "PERCENTAGE":
        discount = pricing.percentage_discount(subtotal, voucher.value, voucher.max_discount)
        message = f"Discount {voucher.value}%"
    elif voucher.type == "FIXED_AMOUNT":
        discount = pricing.fixed_discount(subtotal, voucher.value)
        message = f"Discount {format_vnd(discount)}"
    else:
        # FREE_SHIPPING: скидка идет через стоимость доставки
        discount = 0
        message = "Free shipping"

    return VoucherValidation(
        valid=True,
        discount=discount,
        message=message,
        type=voucher.type,
        voucher=VoucherBrief.model_validate(voucher),
    )

def validate_voucher(
    db: Session,
    code: str,
    subtotal: int,
    user_id: int | None = None
) -> VoucherValidation:
    """Предпросмотр ваучера для корзины. Тот же набор правил, что и при оформлении заказа."""
    voucher = crud_voucher.get_voucher_by_code(db, code)
    result = check_voucher(db, voucher, subtotal, user_id=user_id)
    if not result.valid:
        logger.info(f"Voucher '{code}' rejected for subtotal {subtotal}: {result.message}")
    return result
