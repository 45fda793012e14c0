# app/services/pricing.py
"""
Денежная арифметика заказа. Все суммы - целые VND, никаких float.
Константы берутся из настроек.
"""
from app.core.config import settings
from app.models.product import Product, ProductVariant


def resolve_unit_price(product: Product, variant: ProductVariant | None = None) -> int:
    """Цена единицы из каталога: цена вариации (со скидкой, если есть), иначе цена товара."""
    if variant is not None:
        return variant.sale_price if variant.sale_price is not None else variant.price
    return product.sale_price if product.sale_price is not None else product.base_price

def line_total(price: int, quantity: int) -> int:
    return price * quantity

def percentage_discount(subtotal: int, percent: int, cap: int | None = None) -> int:
    """Процентная скидка с округлением вниз и необязательным потолком."""
    discount = subtotal * percent // 100
    if cap is not None:
        discount = min(discount, cap)
    return discount

def fixed_discount(subtotal: int, amount: int) -> int:
    """Фиксированная скидка не может превышать сумму заказа."""
    return min(amount, subtotal)

def shipping_fee(subtotal: int, free_shipping: bool = False) -> int:
    if free_shipping or subtotal >= settings.FREE_SHIPPING_THRESHOLD:
        return 0
    return settings.STANDARD_SHIPPING_FEE

def redemption_value(points: int) -> int:
    """Стоимость баллов в валюте: 1 балл = POINT_TO_CURRENCY_RATE VND."""
    return points * settings.POINT_TO_CURRENCY_RATE

def order_total(subtotal: int, discount_amount: int, shipping: int) -> int:
    return max(0, subtotal - discount_amount + shipping)
