# app/schemas/payment.py
from pydantic import BaseModel
from datetime import datetime

class SepayWebhookPayload(BaseModel):
    """Тело вебхука SePay. Поля названы так, как их присылает SePay."""
    id: int | str | None = None
    gateway: str | None = None
    transactionDate: str | None = None
    accountNumber: str | None = None
    code: str | None = None
    content: str | None = None
    transferType: str | None = None
    transferAmount: int = 0
    accumulated: int | None = None
    subAccount: str | None = None
    referenceCode: str | None = None
    description: str | None = None

class PaymentInfo(BaseModel):
    bank_name: str
    account_number: str
    account_holder: str
    amount: int
    content: str
    qr_url: str

class PaymentStatusRead(BaseModel):
    order_number: str
    payment_status: str
    payment_method: str
    paid_at: datetime | None = None

    class Config:
        from_attributes = True

class WebhookResponse(BaseModel):
    success: bool = True
    message: str
