from typing import Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

class Settings(BaseSettings):
    # Настройки базы данных
    DATABASE_USER: str = "postgres"
    DATABASE_PASSWORD: str = "postgres"
    DATABASE_HOST: str = "localhost"
    DATABASE_PORT: int = 5432
    DATABASE_NAME: str = "shop"
    # Полный DSN перекрывает отдельные части (используется в тестах и на staging)
    SQLALCHEMY_DATABASE_URI: Optional[str] = None

    # Настройки JWT токенов (выдаются сервисом авторизации)
    SECRET_KEY: str
    ALGORITHM: str = "HS256"

    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379

    # Telegram-бот для уведомлений клиентов и админского чата
    TELEGRAM_BOT_TOKEN: str
    ADMIN_CHAT_ID: int

    # SePay (банковский перевод по QR)
    SEPAY_API_KEY: str = ""
    SEPAY_BANK_NAME: str = ""
    SEPAY_ACCOUNT_NUMBER: str = ""
    SEPAY_ACCOUNT_HOLDER: str = ""
    SEPAY_PREFIX: str = "PC"

    # Ценообразование. Все суммы - целые VND
    FREE_SHIPPING_THRESHOLD: int = 500_000
    STANDARD_SHIPPING_FEE: int = 30_000
    POINT_TO_CURRENCY_RATE: int = 10
    POINTS_PER_CURRENCY_UNIT: int = 100  # 1 базовый балл за каждые 100 VND заказа
    POINTS_LIFETIME_DAYS: int = 365  # срок жизни начисленных баллов (12 месяцев)

    ORDER_NUMBER_PREFIX: str = "ENZ"
    SHOP_TIMEZONE: str = "Asia/Ho_Chi_Minh"
    LOW_STOCK_THRESHOLD: int = 10

    # Ограничение на число одновременно висящих фоновых уведомлений
    MAX_BACKGROUND_TASKS: int = Field(default=500, gt=0)

    CORS_ORIGINS_STR: str = Field(default="http://localhost:3000", alias="CORS_ORIGINS")

    @property
    def CORS_ORIGINS(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS_STR.split(',') if origin.strip()]

    @property
    def REDIS_URL(self) -> str:
        return f"redis://{self.REDIS_HOST}:{self.REDIS_PORT}"
    @property
    def DATABASE_URL(self) -> str:
        if self.SQLALCHEMY_DATABASE_URI:
            return self.SQLALCHEMY_DATABASE_URI
        return f"postgresql+psycopg2://{self.DATABASE_USER}:{self.DATABASE_PASSWORD}@{self.DATABASE_HOST}:{self.DATABASE_PORT}/{self.DATABASE_NAME}"

    model_config = SettingsConfigDict(env_file=".env", populate_by_name=True)

settings = Settings()
