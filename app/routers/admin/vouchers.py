# app/routers/admin/vouchers.py

from fastapi import APIRouter, Depends, Query, Response, status
from sqlalchemy.orm import Session

from app.dependencies import get_db
from app.schemas.voucher import PaginatedVouchers, VoucherCreate, VoucherRead, VoucherUpdate
from app.services import voucher_admin as voucher_admin_service

router = APIRouter()


@router.get("", response_model=PaginatedVouchers)
def get_vouchers_list(
    page: int = Query(1, ge=1),
    size: int = Query(20, ge=1, le=100),
    is_active: bool | None = Query(default=None),
    search: str | None = Query(default=None, description="Поиск по коду"),
    db: Session = Depends(get_db)
):
    """[АДМИН] Список ваучеров."""
    return voucher_admin_service.get_vouchers(db, page, size, is_active=is_active, search=search)


@router.post("", response_model=VoucherRead, status_code=status.HTTP_201_CREATED)
def create_new_voucher(voucher_data: VoucherCreate, db: Session = Depends(get_db)):
    """[АДМИН] Создает ваучер. Без кода - код генерируется."""
    return voucher_admin_service.create_voucher(db, voucher_data)


@router.put("/{voucher_id}", response_model=VoucherRead)
def update_existing_voucher(voucher_id: int, voucher_data: VoucherUpdate, db: Session = Depends(get_db)):
    return voucher_admin_service.update_voucher(db, voucher_id, voucher_data)


@router.delete("/{voucher_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_existing_voucher(voucher_id: int, db: Session = Depends(get_db)):
    """[АДМИН] Удаляет ваучер, если он ни разу не использовался."""
    voucher_admin_service.delete_voucher(db, voucher_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
