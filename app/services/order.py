# app/services/order.py

import logging
from collections import defaultdict
from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.bot.services import notification as notification_service
from app.core.background import fire_and_forget
from app.core.config import settings
from app.crud import order as crud_order
from app.crud import product as crud_product
from app.crud import voucher as crud_voucher
from app.models.order import Order, OrderItem, PENDING, PAYMENT_PENDING
from app.models.user import User
from app.schemas.common import total_pages
from app.schemas.order import OrderCreate, OrderRead, OrderTracking, PaginatedOrders
from app.services import admin_notifications
from app.services import loyalty as loyalty_service
from app.services import pricing
from app.services import voucher as voucher_service

logger = logging.getLogger(__name__)


def _resolve_items(db: Session, order_data: OrderCreate) -> tuple[list[dict], dict]:
    """
    Шаг 1-2: блокирует товары/вариации, берет цены из каталога и проверяет остатки.
    Возвращает снимки позиций и данные для алерта о малом остатке.
    """
    line_items = []
    # Суммарный запрос по каждому (товар, вариация): одна позиция может встречаться в корзине дважды
    requested = defaultdict(int)
    stock_after = {}

    for item in order_data.items:
        product = crud_product.get_product_for_update(db, item.product_id)
        if not product:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Product with ID {item.product_id} not found or inactive"
            )

        variant = None
        if item.variant_id is not None:
            variant = crud_product.get_variant_for_update(db, item.variant_id)
            if not variant or not variant.is_active or variant.product_id != product.id:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Variant with ID {item.variant_id} not found or inactive"
                )

        available = variant.stock_quantity if variant else product.stock_quantity
        key = (product.id, variant.id if variant else None)
        requested[key] += item.quantity
        if available < requested[key]:
            variant_label = f" ({variant.name})" if variant else ""
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=(
                    f'Insufficient stock for "{product.name}"{variant_label}. '
                    f"Available: {available}, Requested: {requested[key]}"
                )
            )
        stock_after[key] = (product.name, variant.name if variant else None, available - requested[key])

        price = pricing.resolve_unit_price(product, variant)
        line_items.append({
            "product_id": product.id,
            "variant_id": variant.id if variant else None,
            "product_name": product.name,
            "variant_name": variant.name if variant else None,
            "sku": (variant.sku if variant and variant.sku else product.sku),
            "price": price,
            "quantity": item.quantity,
            "total": pricing.line_total(price, item.quantity),
        })

    return line_items, stock_after

def _decrement_stock(db: Session, line_items: list[dict]):
    """Шаг 10: условное списание. Если строка не обновилась - остатка уже нет, весь заказ откатывается."""
    for item in line_items:
        if item["variant_id"] is not None:
            ok = crud_product.decrement_variant_stock(db, item["variant_id"], item["quantity"])
            if ok:
                crud_product.increment_sold_count(db, item["product_id"], item["quantity"])
        else:
            ok = crud_product.decrement_product_stock(db, item["product_id"], item["quantity"])

        if not ok:
            label = item["product_name"] + (f" ({item['variant_name']})" if item["variant_name"] else "")
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f'Insufficient stock for "{label}". Requested: {item["quantity"]}'
            )

async def create_order(db: Session, order_data: OrderCreate, current_user: User | None = None) -> OrderRead:
    """
    Оформляет заказ в одной транзакции БД: цены и остатки из каталога, ваучер,
    списание баллов, номер заказа, позиции, таймлайн, остатки и счетчик ваучера.
    Любая ошибка откатывает все целиком. Уведомления уходят в фон только после commit.
    """
    if not order_data.items:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Order must have at least one item")

    user_id = current_user.id if current_user else None

    try:
        # --- Шаг 1-3: позиции и subtotal ---
        line_items, stock_after = _resolve_items(db, order_data)
        subtotal = sum(item["total"] for item in line_items)

        # --- Шаг 4: ваучер (строка блокируется, чтобы лимиты проверялись последовательно) ---
        voucher = None
        voucher_discount = 0
        free_shipping = False
        if order_data.voucher_code:
            voucher = crud_voucher.get_voucher_by_code(db, order_data.voucher_code, lock=True)
            validation = voucher_service.check_voucher(db, voucher, subtotal, user_id=user_id)
            if not validation.valid:
                raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=validation.message)
            voucher_discount = validation.discount
            free_shipping = validation.type == "FREE_SHIPPING"

        # --- Шаг 5: доставка ---
        if user_id is not None and not free_shipping:
            free_shipping = loyalty_service.get_balance(db, user_id).tier_free_shipping
        shipping_fee = pricing.shipping_fee(subtotal, free_shipping=free_shipping)

        # --- Шаг 6: номер заказа ---
        order_number = crud_order.next_order_number(db)

        # --- Шаг 7: расчет скидки баллами ---
        points_to_redeem = order_data.points_to_redeem if user_id is not None else 0
        loyalty_discount = 0
        if points_to_redeem > 0:
            balance = loyalty_service.get_balance_for_update(db, user_id)
            if points_to_redeem > balance.current_balance:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=f"Khong du diem. So du hien tai: {balance.current_balance} diem"
                )
            loyalty_discount = min(
                loyalty_service.get_redemption_value(points_to_redeem),
                max(0, subtotal - voucher_discount)
            )

        # --- Шаг 8: итог ---
        discount_amount = voucher_discount + loyalty_discount
        total = pricing.order_total(subtotal, discount_amount, shipping_fee)

        # --- Шаг 9: заказ, позиции, таймлайн ---
        order = Order(
            order_number=order_number,
            customer_id=user_id,
            status=PENDING,
            payment_status=PAYMENT_PENDING,
            payment_method=order_data.payment_method,
            subtotal=subtotal,
            discount_amount=discount_amount,
            shipping_fee=shipping_fee,
            total=total,
            loyalty_points_redeemed=points_to_redeem if loyalty_discount > 0 else 0,
            voucher_id=voucher.id if voucher else None,
            shipping_name=order_data.shipping_name,
            shipping_phone=order_data.shipping_phone,
            shipping_email=order_data.shipping_email or None,
            shipping_province=order_data.shipping_province,
            shipping_district=order_data.shipping_district,
            shipping_ward=order_data.shipping_ward,
            shipping_address=order_data.shipping_address,
            note=order_data.note or None,
        )
        order.items = [OrderItem(**item) for item in line_items]
        db.add(order)
        db.flush()
        crud_order.add_timeline_entry(db, order.id, status=PENDING, note="Order created", created_by=user_id)

        if loyalty_discount > 0:
            loyalty_service.redeem_points(
                db, user_id=user_id, points=points_to_redeem,
                description=f"Su dung diem cho don hang #{order_number}", order_id=order.id
            )

        # --- Шаг 10-11: остатки и счетчик ваучера ---
        _decrement_stock(db, line_items)
        if voucher:
            crud_voucher.increment_used_count(db, voucher.id)

        db.commit()
    except HTTPException:
        db.rollback()
        raise
    except IntegrityError:
        db.rollback()
        logger.warning("Order number collision during checkout, client should retry.", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Order could not be created due to a concurrent checkout. Please try again."
        )
    except Exception:
        db.rollback()
        logger.error(f"Order creation failed for user {user_id}", exc_info=True)
        raise

    db.refresh(order)
    validated_order = OrderRead.model_validate(order)
    logger.info(
        f"Order {validated_order.order_number} created for user {user_id}: subtotal {subtotal}, "
        f"discount {discount_amount}, shipping {shipping_fee}, total {total}"
    )

    # Запускаем уведомления в фоне, чтобы не задерживать ответ пользователю
    fire_and_forget(notification_service.send_order_confirmation(validated_order), name=f"order-confirmation:{order_number}")
    fire_and_forget(notification_service.send_new_order_to_admin(validated_order), name=f"admin-new-order:{order_number}")
    fire_and_forget(admin_notifications.notify_new_order(validated_order), name=f"inbox-new-order:{order_number}")
    for product_name, variant_name, remaining in stock_after.values():
        if remaining < settings.LOW_STOCK_THRESHOLD:
            fire_and_forget(
                notification_service.send_low_stock_alert(product_name, variant_name, remaining),
                name=f"low-stock:{product_name}"
            )

    return validated_order

# --- Чтение заказов ---

def _check_access(order: Order, current_user: User | None):
    """Заказ клиента виден только ему и персоналу. Гостевые заказы доступны по ID."""
    if order.customer_id is None:
        return
    if current_user and (current_user.id == order.customer_id or current_user.role in ("ADMIN", "STAFF")):
        return
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You do not have access to this order")

def get_order_details(db: Session, order_id: int, current_user: User | None = None) -> OrderRead:
    order = crud_order.get_order(db, order_id)
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Order with ID {order_id} not found")
    _check_access(order, current_user)
    return OrderRead.model_validate(order)

def get_admin_order_details(db: Session, order_id: int) -> OrderRead:
    order = crud_order.get_order(db, order_id)
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Order with ID {order_id} not found")
    return OrderRead.model_validate(order)

def get_order_tracking(db: Session, order_number: str) -> OrderTracking:
    order = crud_order.get_order_by_number(db, order_number)
    if not order:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Order {order_number} not found")
    return OrderTracking.model_validate(order)

def get_user_orders(db: Session, current_user: User, page: int = 1, size: int = 10) -> PaginatedOrders:
    skip = (page - 1) * size
    orders = crud_order.get_user_orders(db, user_id=current_user.id, skip=skip, limit=size)
    total = crud_order.count_user_orders(db, user_id=current_user.id)
    return PaginatedOrders(
        total_items=total,
        total_pages=total_pages(total, size),
        current_page=page,
        size=size,
        items=orders,
    )

def get_orders_for_admin(db: Session, page: int = 1, size: int = 20, **filters) -> PaginatedOrders:
    skip = (page - 1) * size
    orders = crud_order.get_orders(db, skip=skip, limit=size, **filters)
    total = crud_order.count_orders(db, **filters)
    return PaginatedOrders(
        total_items=total,
        total_pages=total_pages(total, size),
        current_page=page,
        size=size,
        items=orders,
    )
