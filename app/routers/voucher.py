# app/routers/voucher.py
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from typing import Optional

from app.core.limiter import limiter
from app.dependencies import get_db, get_optional_current_user
from app.models.user import User
from app.schemas.voucher import VoucherValidateRequest, VoucherValidation
from app.services import voucher as voucher_service

router = APIRouter()


@router.post("/vouchers/validate", response_model=VoucherValidation)
@limiter.limit("20/minute")
def validate_voucher_code(
    request: Request,
    validate_data: VoucherValidateRequest,
    db: Session = Depends(get_db),
    current_user: Optional[User] = Depends(get_optional_current_user)
):
    """
    Предпросмотр скидки по ваучеру. Ответ всегда 200: причина отказа в поле message.
    """
    user_id = current_user.id if current_user else None
    return voucher_service.validate_voucher(db, validate_data.code, validate_data.subtotal, user_id=user_id)
