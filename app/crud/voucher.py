# app/crud/voucher.py
from typing import List
from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.models.voucher import Voucher


def get_voucher(db: Session, voucher_id: int) -> Voucher | None:
    return db.query(Voucher).filter(Voucher.id == voucher_id).first()

def get_voucher_by_code(db: Session, code: str, lock: bool = False) -> Voucher | None:
    """
    Ищет ваучер по коду без учета регистра (коды хранятся в верхнем регистре).
    С lock=True строка блокируется: параллельные оформления с одним кодом идут по очереди.
    """
    query = db.query(Voucher).filter(Voucher.code == code.strip().upper())
    if lock:
        query = query.with_for_update()
    return query.first()

def get_vouchers(
    db: Session,
    skip: int = 0,
    limit: int = 20,
    is_active: bool | None = None,
    search: str | None = None
) -> List[Voucher]:
    query = _filtered_query(db, is_active, search)
    return query.order_by(Voucher.created_at.desc(), Voucher.id.desc()).offset(skip).limit(limit).all()

def count_vouchers(db: Session, is_active: bool | None = None, search: str | None = None) -> int:
    return _filtered_query(db, is_active, search).count()

def _filtered_query(db: Session, is_active: bool | None, search: str | None):
    query = db.query(Voucher)
    if is_active is not None:
        query = query.filter(Voucher.is_active == is_active)
    if search:
        pattern = f"%{search}%"
        query = query.filter(or_(Voucher.code.ilike(pattern), Voucher.name.ilike(pattern)))
    return query

def create_voucher(db: Session, data: dict) -> Voucher:
    db_voucher = Voucher(**data)
    db.add(db_voucher)
    db.commit()
    db.refresh(db_voucher)
    return db_voucher

def update_voucher(db: Session, db_voucher: Voucher, data: dict) -> Voucher:
    for key, value in data.items():
        setattr(db_voucher, key, value)
    db.commit()
    db.refresh(db_voucher)
    return db_voucher

def delete_voucher(db: Session, db_voucher: Voucher):
    db.delete(db_voucher)
    db.commit()

# --- Счетчик использований (без commit) ---

def increment_used_count(db: Session, voucher_id: int):
    db.query(Voucher).filter(Voucher.id == voucher_id).update(
        {Voucher.used_count: Voucher.used_count + 1}, synchronize_session=False
    )

def decrement_used_count(db: Session, voucher_id: int):
    """Уменьшает счетчик, не опуская его ниже нуля."""
    db.query(Voucher).filter(Voucher.id == voucher_id, Voucher.used_count > 0).update(
        {Voucher.used_count: Voucher.used_count - 1}, synchronize_session=False
    )
