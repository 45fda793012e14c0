# app/schemas/voucher.py
from pydantic import BaseModel, Field, field_validator
from datetime import datetime
from typing import Literal

from app.schemas.common import PaginatedResponse

VoucherType = Literal["PERCENTAGE", "FIXED_AMOUNT", "FREE_SHIPPING"]


class VoucherBrief(BaseModel):
    id: int
    code: str
    name: str
    type: VoucherType
    value: int

    class Config:
        from_attributes = True

class VoucherValidation(BaseModel):
    """Результат проверки ваучера. Не меняет состояние БД."""
    valid: bool
    discount: int = 0
    message: str
    type: VoucherType | None = None
    voucher: VoucherBrief | None = None

class VoucherValidateRequest(BaseModel):
    code: str = Field(..., min_length=1)
    subtotal: int = Field(..., ge=0)

# --- Админка ---

class VoucherBase(BaseModel):
    name: str = Field(..., min_length=1)
    description: str | None = None
    type: VoucherType
    value: int = Field(..., ge=0)
    min_order_amount: int | None = Field(None, ge=0)
    max_discount: int | None = Field(None, ge=0)
    usage_limit: int | None = Field(None, ge=1)
    per_user_limit: int = Field(1, ge=0)
    start_date: datetime
    end_date: datetime
    is_active: bool = True

class VoucherCreate(VoucherBase):
    # Если код не передан, он будет сгенерирован
    code: str | None = None

    @field_validator('code')
    @classmethod
    def normalize_code(cls, v):
        return v.strip().upper() if v else None

class VoucherUpdate(BaseModel):
    code: str | None = None
    name: str | None = None
    description: str | None = None
    type: VoucherType | None = None
    value: int | None = Field(None, ge=0)
    min_order_amount: int | None = Field(None, ge=0)
    max_discount: int | None = Field(None, ge=0)
    usage_limit: int | None = Field(None, ge=1)
    per_user_limit: int | None = Field(None, ge=0)
    start_date: datetime | None = None
    end_date: datetime | None = None
    is_active: bool | None = None

    @field_validator('code')
    @classmethod
    def normalize_code(cls, v):
        return v.strip().upper() if v else None

class VoucherRead(VoucherBase):
    id: int
    code: str
    used_count: int
    created_at: datetime | None = None

    class Config:
        from_attributes = True

class PaginatedVouchers(PaginatedResponse[VoucherRead]):
    pass
