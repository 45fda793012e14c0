# app/services/voucher_admin.py

import logging
import secrets
import string
from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.crud import order as crud_order
from app.crud import voucher as crud_voucher
from app.schemas.common import total_pages
from app.schemas.voucher import PaginatedVouchers, VoucherCreate, VoucherRead, VoucherUpdate
from app.services.voucher import as_utc

logger = logging.getLogger(__name__)

CODE_ALPHABET = string.ascii_uppercase + string.digits
CODE_LENGTH = 10


def generate_code() -> str:
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(CODE_LENGTH))

def _unique_code(db: Session) -> str:
    code = generate_code()
    while crud_voucher.get_voucher_by_code(db, code):
        code = generate_code()
    return code

def _check_dates(start_date, end_date):
    if as_utc(start_date) >= as_utc(end_date):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="End date must be after start date")

def _check_value(voucher_type: str, value: int):
    if voucher_type == "PERCENTAGE" and value > 100:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Percentage discount cannot exceed 100")

def _get_or_404(db: Session, voucher_id: int):
    db_voucher = crud_voucher.get_voucher(db, voucher_id)
    if not db_voucher:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Voucher with ID {voucher_id} not found")
    return db_voucher


def get_vouchers(
    db: Session,
    page: int = 1,
    size: int = 20,
    is_active: bool | None = None,
    search: str | None = None
) -> PaginatedVouchers:
    skip = (page - 1) * size
    items = crud_voucher.get_vouchers(db, skip=skip, limit=size, is_active=is_active, search=search)
    total = crud_voucher.count_vouchers(db, is_active=is_active, search=search)
    return PaginatedVouchers(
        total_items=total,
        total_pages=total_pages(total, size),
        current_page=page,
        size=size,
        items=items,
    )

def create_voucher(db: Session, voucher_data: VoucherCreate) -> VoucherRead:
    """Создает ваучер. Код приводится к верхнему регистру; если его нет - генерируется."""
    if voucher_data.code:
        if crud_voucher.get_voucher_by_code(db, voucher_data.code):
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Voucher code already exists")
        code = voucher_data.code
    else:
        code = _unique_code(db)

    _check_dates(voucher_data.start_date, voucher_data.end_date)
    _check_value(voucher_data.type, voucher_data.value)

    payload = voucher_data.model_dump(exclude={"code"})
    db_voucher = crud_voucher.create_voucher(db, {**payload, "code": code})
    logger.info(f"Voucher '{code}' created (type {db_voucher.type}, value {db_voucher.value}).")
    return VoucherRead.model_validate(db_voucher)

def update_voucher(db: Session, voucher_id: int, voucher_data: VoucherUpdate) -> VoucherRead:
    db_voucher = _get_or_404(db, voucher_id)
    update_data = voucher_data.model_dump(exclude_unset=True)

    new_code = update_data.get("code")
    if new_code and new_code != db_voucher.code and crud_voucher.get_voucher_by_code(db, new_code):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Voucher code already exists")
    if "code" in update_data and not new_code:
        update_data.pop("code")

    _check_dates(update_data.get("start_date", db_voucher.start_date), update_data.get("end_date", db_voucher.end_date))
    _check_value(update_data.get("type", db_voucher.type), update_data.get("value", db_voucher.value))

    db_voucher = crud_voucher.update_voucher(db, db_voucher, update_data)
    logger.info(f"Voucher {voucher_id} updated: {sorted(update_data)}")
    return VoucherRead.model_validate(db_voucher)

def delete_voucher(db: Session, voucher_id: int):
    """Удалить можно только ни разу не использованный ваучер."""
    db_voucher = _get_or_404(db, voucher_id)
    if db_voucher.used_count > 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot delete voucher that has been used")
    # Отмененные заказы тоже держат voucher_id. Такой ваучер можно только деактивировать
    if crud_order.count_orders_with_voucher(db, voucher_id) > 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot delete voucher referenced by orders. Deactivate it instead"
        )
    crud_voucher.delete_voucher(db, db_voucher)
    logger.info(f"Voucher {voucher_id} deleted.")
