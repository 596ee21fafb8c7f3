# ./services/sales_service/catalog_client.py
"""HTTP client the sales service uses to talk to the catalog service.

Lookups and notifications never raise: a failed call is logged and reported
as ``None``/``False`` so the calling use case can degrade. Registering a sale
is the exception, since a sale must not be stored without the vehicle being
marked sold in the catalog.
"""
import os
import logging
from typing import Optional

import httpx

from shared.errors import ConflictError, NotFoundError, UnavailableError, ValidationError
from shared.models import VehicleSnapshot

logger = logging.getLogger(__name__)

CATALOG_SERVICE_URL = os.getenv("CATALOG_SERVICE_URL", "http://catalog-service:8080")
CATALOG_TIMEOUT = float(os.getenv("CATALOG_TIMEOUT", "10.0"))


class CatalogClient:
    def __init__(self, base_url: str = CATALOG_SERVICE_URL, timeout: float = CATALOG_TIMEOUT,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self.base_url, timeout=self.timeout, transport=self.transport)

    async def get_vehicle(self, vehicle_id: str) -> Optional[VehicleSnapshot]:
        try:
            logger.info(f"Fetching vehicle {vehicle_id} from catalog...")
            async with self._client() as client:
                response = await client.get(f"/vehicles/{vehicle_id}")
            if response.status_code != 200:
                logger.warning(f"Vehicle {vehicle_id} not returned by catalog: {response.status_code}")
                return None
            vehicle = response.json()
            return VehicleSnapshot(
                brand=vehicle["brand"],
                model=vehicle["model"],
                year=vehicle["year"],
                color=vehicle.get("color") or "",
                original_price=vehicle["price"],
                is_sold=vehicle.get("isSold", False),
            )
        except (httpx.HTTPError, KeyError, ValueError) as e:
            logger.error(f"Error fetching vehicle {vehicle_id}: {e}")
            return None

    async def register_sale(self, vehicle_id: str, buyer_cpf: str, payment_code: str):
        payload = {"buyerCpf": buyer_cpf, "paymentCode": payment_code}
        try:
            async with self._client() as client:
                response = await client.post(f"/vehicles/{vehicle_id}/sale", json=payload)
        except httpx.HTTPError as e:
            logger.error(f"Error registering sale of vehicle {vehicle_id} in catalog: {e}")
            raise UnavailableError("Catalog service unavailable", str(e))

        if response.status_code == 200:
            logger.info(f"Vehicle {vehicle_id} marked as sold in catalog ({payment_code}).")
            return
        message = _message(response)
        logger.warning(f"Catalog refused sale of vehicle {vehicle_id}: {response.status_code} - {message}")
        if response.status_code == 404:
            raise NotFoundError("Vehicle not found")
        if response.status_code == 409:
            raise ConflictError("Vehicle is not available for purchase", message)
        if response.status_code == 400:
            raise ValidationError(message)
        raise UnavailableError("Catalog service failed to register the sale", message)

    async def notify_vehicle_sold(self, vehicle_id: str, payment_code: str, status: str) -> bool:
        payload = {"vehicleId": vehicle_id, "paymentCode": payment_code, "status": status}
        try:
            logger.info(f"Notifying catalog of vehicle {vehicle_id} payment status {status}...")
            async with self._client() as client:
                response = await client.post("/vehicles/payment-webhook", json=payload)
            if response.is_success:
                logger.info(f"Webhook delivered for vehicle {vehicle_id}")
                return True
            logger.warning(f"Webhook for vehicle {vehicle_id} failed: {response.status_code} - {response.text}")
            return False
        except httpx.HTTPError as e:
            logger.error(f"Error notifying catalog about vehicle {vehicle_id}: {e}")
            return False


def _message(response: httpx.Response) -> str:
    try:
        return response.json().get("message", response.text)
    except ValueError:
        return response.text
