# tests/factories.py
from datetime import datetime, timedelta, timezone

from jose import jwt
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.loyalty import ADMIN_ADJUST, LoyaltyTransaction
from app.models.product import Product, ProductVariant
from app.models.user import User
from app.models.voucher import Voucher
from app.schemas.order import OrderCreate


def make_user(db: Session, **kwargs) -> User:
    db_user = User(**kwargs)
    db.add(db_user)
    db.commit()
    db.refresh(db_user)
    return db_user

def make_token(db_user: User) -> str:
    return jwt.encode({"sub": str(db_user.id)}, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

def auth_headers(db_user: User) -> dict:
    return {"Authorization": f"Bearer {make_token(db_user)}"}

def make_product(db: Session, name: str = "Ao thun", price: int = 200_000, stock: int = 50, **kwargs) -> Product:
    db_product = Product(name=name, base_price=price, stock_quantity=stock, **kwargs)
    db.add(db_product)
    db.commit()
    db.refresh(db_product)
    return db_product

def make_variant(db: Session, db_product: Product, name: str, price: int, stock: int, **kwargs) -> ProductVariant:
    db_variant = ProductVariant(product_id=db_product.id, name=name, price=price, stock_quantity=stock, **kwargs)
    db.add(db_variant)
    db.commit()
    db.refresh(db_variant)
    return db_variant

def make_voucher(db: Session, code: str = "SAVE10", type: str = "PERCENTAGE", value: int = 10, **kwargs) -> Voucher:
    now = datetime.now(timezone.utc)
    data = {
        "name": f"Voucher {code}",
        "start_date": now - timedelta(days=1),
        "end_date": now + timedelta(days=30),
        **kwargs,
    }
    db_voucher = Voucher(code=code, type=type, value=value, **data)
    db.add(db_voucher)
    db.commit()
    db.refresh(db_voucher)
    return db_voucher

def give_points(db: Session, db_user: User, points: int) -> LoyaltyTransaction:
    """Бонус от администратора: удобный способ завести баланс и уровень."""
    transaction = LoyaltyTransaction(user_id=db_user.id, points=points, type=ADMIN_ADJUST, description="Test bonus")
    db.add(transaction)
    db.commit()
    return transaction

def order_payload(items: list[dict], **overrides) -> dict:
    payload = {
        "items": items,
        "shipping_name": "Nguyen Van A",
        "shipping_phone": "0900000001",
        "shipping_email": "customer@test.vn",
        "shipping_province": "Ho Chi Minh",
        "shipping_district": "Quan 1",
        "shipping_ward": "Ben Nghe",
        "shipping_address": "12 Le Loi",
        "payment_method": "COD",
    }
    payload.update(overrides)
    return payload

def order_data(items: list[dict], **overrides) -> OrderCreate:
    return OrderCreate(**order_payload(items, **overrides))
