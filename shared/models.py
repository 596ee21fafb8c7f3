# ./shared/models.py
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Optional
from datetime import datetime

from shared.errors import ValidationError


class PaymentStatus(str, Enum):
    PENDING = "Pending"
    PAID = "Paid"
    CANCELLED = "Cancelled"
    FAILED = "Failed"


# Aliases aceitos na entrada (webhooks de provedores de pagamento)
PAYMENT_STATUS_ALIASES = {
    "pending": PaymentStatus.PENDING,
    "processing": PaymentStatus.PENDING,
    "confirmed": PaymentStatus.PAID,
    "paid": PaymentStatus.PAID,
    "approved": PaymentStatus.PAID,
    "cancelled": PaymentStatus.CANCELLED,
    "canceled": PaymentStatus.CANCELLED,
    "failed": PaymentStatus.FAILED,
    "rejected": PaymentStatus.FAILED,
    "declined": PaymentStatus.FAILED,
}


def parse_payment_status(value) -> PaymentStatus:
    """Converts a provider status string (or a PaymentStatus) into the canonical enum.

    Raises ValidationError for anything outside PAYMENT_STATUS_ALIASES.
    """
    if isinstance(value, PaymentStatus):
        return value
    key = (value or "").strip().lower()
    try:
        return PAYMENT_STATUS_ALIASES[key]
    except KeyError:
        raise ValidationError(f"Invalid payment status: {value!r}")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VehicleSnapshot(CamelModel):
    brand: str
    model: str
    year: int
    color: str
    original_price: float
    # Só usado na criação da venda; não é persistido no snapshot
    is_sold: bool = Field(default=False, exclude=True)


class VehiclePaymentWebhook(CamelModel):
    vehicle_id: Optional[str] = None
    payment_code: str
    status: str


class SalePaymentWebhook(CamelModel):
    payment_code: str
    status: str


class RegisterSaleCommand(CamelModel):
    buyer_cpf: str
    payment_code: str


class MessageResponse(BaseModel):
    message: str


class HealthResponse(BaseModel):
    status: str
    service: str
    timestamp: datetime
    version: str
    checks: dict = Field(default_factory=dict)
