# ./services/sales_service/domain.py
import uuid
import logging
from datetime import datetime, timezone
from typing import Optional

from pydantic import Field

from shared.errors import ConflictError, NotFoundError, ServiceError, ValidationError
from shared.models import CamelModel, PaymentStatus, VehicleSnapshot, parse_payment_status

logger = logging.getLogger(__name__)


def utcnow():
    return datetime.now(timezone.utc)


def generate_payment_code() -> str:
    return f"PAY-{utcnow():%Y%m%d}-{uuid.uuid4().hex[:8].upper()}"


class VehicleSale(CamelModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    vehicle_id: str
    buyer_cpf: str
    buyer_name: str
    buyer_email: Optional[str] = None
    sale_price: float
    payment_code: str = Field(default_factory=generate_payment_code)
    payment_status: PaymentStatus = PaymentStatus.PENDING
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
    vehicle_data: VehicleSnapshot

    @classmethod
    def create(cls, vehicle_id: str, buyer_cpf: str, buyer_name: str, buyer_email: Optional[str],
               snapshot: VehicleSnapshot) -> "VehicleSale":
        return cls(
            vehicle_id=vehicle_id,
            buyer_cpf=buyer_cpf,
            buyer_name=buyer_name,
            buyer_email=buyer_email,
            sale_price=snapshot.original_price,
            vehicle_data=snapshot.model_copy(),
        )

    def update_payment_status(self, status: PaymentStatus):
        self.payment_status = status
        self.updated_at = utcnow()

    def to_document(self) -> dict:
        document = self.model_dump(by_alias=True, exclude={"id"})
        document["_id"] = self.id
        document["paymentStatus"] = self.payment_status.value
        return document

    @classmethod
    def from_document(cls, document: dict) -> "VehicleSale":
        data = dict(document)
        data["id"] = data.pop("_id")
        return cls.model_validate(data)


async def create_sale(repository, catalog, vehicle_id: str, buyer_cpf: str, buyer_name: str,
                      buyer_email: Optional[str]) -> VehicleSale:
    """Register a purchase of a catalog vehicle.

    The vehicle snapshot is fetched from the catalog and copied into the sale,
    then the catalog is asked to mark the vehicle as sold under the new
    payment code. The sale document is only stored once that reservation
    succeeds, so a vehicle cannot end up with two pending sales. If storing the
    sale fails, the reservation is cancelled again before the error propagates.
    """
    snapshot = await catalog.get_vehicle(vehicle_id)
    if snapshot is None:
        raise NotFoundError("Vehicle not found")

    if not buyer_cpf or not buyer_cpf.strip():
        raise ValidationError("Buyer CPF is required")
    if not buyer_name or not buyer_name.strip():
        raise ValidationError("Buyer name is required")

    if snapshot.is_sold:
        raise ConflictError("Vehicle is not available for purchase")

    sale = VehicleSale.create(vehicle_id, buyer_cpf, buyer_name, buyer_email, snapshot)

    await catalog.register_sale(vehicle_id, buyer_cpf, sale.payment_code)
    try:
        repository.insert(sale)
    except ServiceError:
        logger.error(f"Sale {sale.id} not stored; releasing vehicle {vehicle_id} in catalog.")
        released = await catalog.notify_vehicle_sold(vehicle_id, sale.payment_code, PaymentStatus.CANCELLED.value)
        if not released:
            logger.warning(f"Vehicle {vehicle_id} still reserved under {sale.payment_code} with no sale record.")
        raise
    logger.info(f"Sale {sale.id} created for vehicle {vehicle_id} ({sale.payment_code}).")
    return sale


def get_sale(repository, sale_id: str) -> VehicleSale:
    sale = repository.find_by_id(sale_id)
    if sale is None:
        raise NotFoundError("Sale not found")
    return sale


async def process_payment(repository, catalog, payment_code: str, status: str) -> VehicleSale:
    """Apply a payment-provider callback to the sale with ``payment_code``.

    The local status update is never rolled back: if the catalog cannot be
    notified the failure is only logged and the two services stay out of
    sync until the webhook is replayed.
    """
    if not payment_code or not payment_code.strip():
        raise ValidationError("Payment code is required")
    if not status or not status.strip():
        raise ValidationError("Payment status is required")

    sale = repository.find_by_payment_code(payment_code)
    if sale is None:
        raise NotFoundError("Payment code not found")

    payment_status = parse_payment_status(status)
    previous_status = sale.payment_status
    sale.update_payment_status(payment_status)
    repository.update(sale)
    logger.info(f"Sale {sale.id} payment status set to {payment_status.value}.")

    if payment_status == PaymentStatus.CANCELLED and previous_status == PaymentStatus.CANCELLED:
        logger.info(f"Sale {sale.id} was already cancelled; catalog not notified again.")
    elif payment_status in (PaymentStatus.PAID, PaymentStatus.CANCELLED):
        delivered = await catalog.notify_vehicle_sold(sale.vehicle_id, payment_code, payment_status.value)
        if not delivered:
            logger.warning(
                f"Catalog not notified for sale {sale.id}; vehicle {sale.vehicle_id} "
                f"may still show a pending payment.")
    return sale
