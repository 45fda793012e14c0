# app/crud/product.py
from sqlalchemy.orm import Session

from app.models.product import Product, ProductVariant


def get_product_for_update(db: Session, product_id: int) -> Product | None:
    """Загружает активный товар с блокировкой строки до конца транзакции."""
    return db.query(Product).filter(
        Product.id == product_id,
        Product.is_active == True
    ).with_for_update().first()

def get_variant_for_update(db: Session, variant_id: int) -> ProductVariant | None:
    return db.query(ProductVariant).filter(
        ProductVariant.id == variant_id
    ).with_for_update().first()

# --- Изменение остатков ---
# Все функции только меняют данные в сессии, commit делает вызывающий код.

def decrement_product_stock(db: Session, product_id: int, quantity: int) -> bool:
    """
    Условное списание остатка: UPDATE ... WHERE stock_quantity >= quantity.
    Возвращает False, если остатка уже не хватает (строка не обновлена).
    sold_count увеличивается в том же запросе.
    """
    updated = db.query(Product).filter(
        Product.id == product_id,
        Product.stock_quantity >= quantity
    ).update({
        Product.stock_quantity: Product.stock_quantity - quantity,
        Product.sold_count: Product.sold_count + quantity,
    }, synchronize_session=False)
    return updated == 1

def decrement_variant_stock(db: Session, variant_id: int, quantity: int) -> bool:
    updated = db.query(ProductVariant).filter(
        ProductVariant.id == variant_id,
        ProductVariant.stock_quantity >= quantity
    ).update({
        ProductVariant.stock_quantity: ProductVariant.stock_quantity - quantity,
    }, synchronize_session=False)
    return updated == 1

def increment_sold_count(db: Session, product_id: int, quantity: int):
    db.query(Product).filter(Product.id == product_id).update(
        {Product.sold_count: Product.sold_count + quantity}, synchronize_session=False
    )

def restore_product_stock(db: Session, product_id: int, quantity: int):
    """Возвращает остаток товара при отмене заказа и уменьшает sold_count."""
    db.query(Product).filter(Product.id == product_id).update({
        Product.stock_quantity: Product.stock_quantity + quantity,
        Product.sold_count: Product.sold_count - quantity,
    }, synchronize_session=False)

def restore_variant_stock(db: Session, variant_id: int, product_id: int, quantity: int):
    db.query(ProductVariant).filter(ProductVariant.id == variant_id).update(
        {ProductVariant.stock_quantity: ProductVariant.stock_quantity + quantity}, synchronize_session=False
    )
    db.query(Product).filter(Product.id == product_id).update(
        {Product.sold_count: Product.sold_count - quantity}, synchronize_session=False
    )
