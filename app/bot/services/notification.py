# app/bot/services/notification.py
import html
import logging
from sqlalchemy.orm import Session
from aiogram.exceptions import TelegramForbiddenError

from app.bot.core import bot
from app.core.config import settings
from app.crud import notification as crud_notification
from app.crud import user as crud_user
from app.dependencies import get_db_context
from app.models.user import User
from app.schemas.order import OrderRead

logger = logging.getLogger(__name__)

PAYMENT_METHOD_TITLES = {
    "COD": "Thanh toán khi nhận hàng (COD)",
    "SEPAY_QR": "Chuyển khoản QR (SePay)",
}


def _money(amount: int) -> str:
    return f"{amount:,}".replace(",", ".") + "đ"

async def _send_message(db: Session, user: User, text: str) -> tuple[bool, str | None]:
    """
    Приватная функция-обертка для безопасной отправки сообщений.
    Обновляет статус 'bot_accessible' в случае блокировки.
    Возвращает кортеж (успех: bool, причина_неудачи: str | None).
    """
    if not user.telegram_id:
        return False, "User has no Telegram account"

    if not user.bot_accessible:
        reason = "Bot is marked as inaccessible"
        logger.info(f"Skipping notification for user {user.id}: {reason}.")
        return False, reason

    try:
        await bot.send_message(chat_id=user.telegram_id, text=text)
        return True, None
    except TelegramForbiddenError:
        reason = "User has blocked the bot"
        logger.error(f"User {user.id} has blocked the bot. Updating status.")
        user.bot_accessible = False
        db.add(user)
        db.commit()
        return False, reason
    except Exception as e:
        reason = str(e)
        logger.error(f"Failed to send message to user {user.id}: {reason}")
        return False, reason

async def _notify_customer(order: OrderRead, type: str, title: str, text: str):
    """
    Создает уведомление в личном кабинете и дублирует его в Telegram.
    Для гостевых заказов ничего не делает. Открывает собственную сессию БД.
    """
    if order.customer_id is None:
        return

    with get_db_context() as db:
        user = crud_user.get_user_by_id(db, order.customer_id)
        if not user:
            logger.warning(f"Customer {order.customer_id} of order {order.order_number} not found, skipping '{type}'.")
            return

        if crud_notification.get_notification_by_type_and_entity(db, user.id, type, order.order_number):
            logger.info(f"Notification '{type}' for order {order.order_number} already exists, skipping.")
            return

        crud_notification.create_notification(
            db, user_id=user.id, type=type, title=title,
            message=text, related_entity_id=order.order_number
        )
        await _send_message(db, user, text)

def _format_items(order: OrderRead) -> list[str]:
    lines = ["<b>Sản phẩm:</b>"]
    for item in order.items:
        name = html.escape(item.product_name)
        if item.variant_name:
            name += f" ({html.escape(item.variant_name)})"
        lines.append(f"• {name} x{item.quantity} - {_money(item.total)}")
    return lines

def _format_order_details_for_user(order: OrderRead) -> str:
    """Вспомогательная функция для форматирования деталей заказа для КЛИЕНТА."""
    message_parts = [
        f"✅ Đơn hàng <b>{order.order_number}</b> đã được đặt thành công!\n",
        f"<b>Phương thức thanh toán:</b> {PAYMENT_METHOD_TITLES.get(order.payment_method, order.payment_method)}",
        "",
    ]
    message_parts.extend(_format_items(order))
    if order.discount_amount:
        message_parts.append(f"\n<b>Giảm giá:</b> -{_money(order.discount_amount)}")
    message_parts.append(f"<b>Phí vận chuyển:</b> {_money(order.shipping_fee)}")
    message_parts.append(f"\n<b>Tổng cộng: {_money(order.total)}</b>")
    message_parts.append("\nCảm ơn bạn đã mua hàng!")
    return "\n".join(message_parts)

def _format_order_details_for_admin(order: OrderRead) -> str:
    """Форматирует детали заказа для АДМИНА (без "спасибо за заказ")."""
    address = ", ".join([order.shipping_address, order.shipping_ward, order.shipping_district, order.shipping_province])
    message_parts = [
        f"Заказ <b>{order.order_number}</b>",
        f"<b>Способ оплаты:</b> {order.payment_method}",
        f"<b>Получатель:</b> {html.escape(order.shipping_name)}",
        f"<b>Номер телефона:</b> {html.escape(order.shipping_phone)}",
    ]
    if order.shipping_email:
        message_parts.append(f"<b>Email:</b> {html.escape(order.shipping_email)}")
    message_parts.append(f"<b>Адрес:</b> {html.escape(address)}")
    message_parts.append("")
    message_parts.extend(_format_items(order))
    message_parts.append(f"\n<b>Итоговая сумма: {_money(order.total)}</b>")
    return "\n".join(message_parts)


async def _send_to_admin_chat(text: str):
    await bot.send_message(chat_id=settings.ADMIN_CHAT_ID, text=text)

# --- Уведомления по заказу ---

async def send_order_confirmation(order: OrderRead):
    """Подтверждение оформления заказа клиенту."""
    await _notify_customer(
        order, type="order_created",
        title=f"Đơn hàng {order.order_number} đã được tạo",
        text=_format_order_details_for_user(order),
    )

async def send_new_order_to_admin(order: OrderRead):
    """Отправляет детали нового заказа в админский чат."""
    admin_message = f"<b>🔥 Новый заказ!</b>\n\n{_format_order_details_for_admin(order)}"
    if order.payment_method == "SEPAY_QR":
        admin_message += "\n\n⏳ Ожидает оплаты по QR."
    await _send_to_admin_chat(admin_message)

async def send_shipping_update(order: OrderRead):
    await _notify_customer(
        order, type="order_shipping",
        title=f"Đơn hàng {order.order_number} đang được giao",
        text=f"🚚 Đơn hàng <b>{order.order_number}</b> đã được giao cho đơn vị vận chuyển.",
    )

async def send_delivery_confirmation(order: OrderRead):
    await _notify_customer(
        order, type="order_delivered",
        title=f"Đơn hàng {order.order_number} đã giao thành công",
        text=f"📦 Đơn hàng <b>{order.order_number}</b> đã được giao thành công. Cảm ơn bạn!",
    )

async def send_order_cancellation(order: OrderRead):
    """Уведомление об отмене заказа (клиенту и в админский чат)."""
    reason = f"\nLý do: {html.escape(order.cancel_reason)}" if order.cancel_reason else ""
    await _notify_customer(
        order, type="order_cancelled",
        title=f"Đơn hàng {order.order_number} đã bị hủy",
        text=f"❌ Đơn hàng <b>{order.order_number}</b> đã bị hủy.{reason}",
    )
    await _send_to_admin_chat(
        f"❌ <b>Заказ {order.order_number} отменен.</b>\n"
        f"Клиент: {html.escape(order.shipping_name)} ({html.escape(order.shipping_phone)}){reason}"
    )

async def send_payment_success(order: OrderRead):
    await _notify_customer(
        order, type="payment_success",
        title=f"Thanh toán đơn hàng {order.order_number} thành công",
        text=f"💳 Đã nhận thanh toán <b>{_money(order.total)}</b> cho đơn hàng <b>{order.order_number}</b>.",
    )
    await _send_to_admin_chat(
        f"💰 <b>Оплата получена</b>\nЗаказ <b>{order.order_number}</b>: {_money(order.total)}\n"
        f"Транзакция: <code>{html.escape(order.payment_tx_id or '-')}</code>"
    )

async def send_points_earned(user_id: int, points_added: int, order_number: str):
    """Уведомление о начислении бонусных баллов."""
    with get_db_context() as db:
        user = crud_user.get_user_by_id(db, user_id)
        if not user:
            return
        message = (
            f"💰 Bạn vừa nhận được <b>{points_added} điểm thưởng</b> cho đơn hàng <b>{order_number}</b>!\n\n"
            f"Hãy dùng điểm để thanh toán cho lần mua tiếp theo."
        )
        crud_notification.create_notification(
            db, user_id=user.id, type="points_earned",
            title=f"+{points_added} điểm thưởng", message=message, related_entity_id=order_number
        )
        await _send_message(db, user, message)

# --- Служебные уведомления для админов ---

async def send_low_stock_alert(product_name: str, variant_name: str | None, remaining: int):
    name = html.escape(product_name)
    if variant_name:
        name += f" ({html.escape(variant_name)})"
    await _send_to_admin_chat(f"⚠️ <b>Заканчивается товар:</b> {name}\nОсталось: <b>{remaining}</b> шт.")

async def send_error_to_admin(error_message: str):
    """
    Отправляет сообщение о критической ошибке в админский чат.
    """
    # Обрезаем сообщение, если оно слишком длинное (лимит Telegram 4096 символов)
    if len(error_message) > 4096:
        error_message = error_message[:4090] + "\n[...]"
    try:
        await _send_to_admin_chat(error_message)
    except Exception as e:
        logger.error(f"Failed to send error report to admin chat: {e}")
