# app/bot/core.py
from aiogram import Bot
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from app.core.config import settings

# Создаем объект с настройками по умолчанию
default_properties = DefaultBotProperties(parse_mode=ParseMode.HTML)

# Бот используется только для исходящих уведомлений (клиентам и в админский чат)
bot = Bot(token=settings.TELEGRAM_BOT_TOKEN, default=default_properties)
