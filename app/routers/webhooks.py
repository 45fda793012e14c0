# app/routers/webhooks.py

import logging
from fastapi import APIRouter, Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from app.dependencies import get_db
from app.schemas.payment import SepayWebhookPayload, WebhookResponse
from app.services import payment as payment_service

logger = logging.getLogger(__name__)

# Подключается в main.py с префиксом /api
router = APIRouter()


async def verify_sepay_api_key(authorization: str | None = Header(None)):
    """Зависимость для проверки ключа SePay: 'Authorization: Apikey <key>'."""
    if not payment_service.verify_webhook(authorization):
        logger.warning("SePay webhook rejected: invalid API key.")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API key")


@router.post("/webhook/sepay", response_model=WebhookResponse, dependencies=[Depends(verify_sepay_api_key)])
async def sepay_webhook(payload: SepayWebhookPayload, db: Session = Depends(get_db)):
    """
    Уведомление SePay о входящем переводе. Всегда 200, чтобы SePay
    не повторял доставку; несовпадения только логируются.
    """
    return await payment_service.process_sepay_webhook(db, payload)
