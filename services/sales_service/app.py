# ./services/sales_service/app.py
from fastapi import FastAPI, HTTPException, status, Depends
from typing import List, Optional, Annotated
import os
import logging
from datetime import datetime
import uvicorn

from shared.errors import register_error_handlers
from shared.models import CamelModel, HealthResponse, MessageResponse, SalePaymentWebhook
from services.sales_service.catalog_client import CatalogClient
from services.sales_service.domain import VehicleSale, create_sale, get_sale, process_payment
from services.sales_service.mongo import SaleRepository, get_collection, ping

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SERVICE_NAME = "sales-service"
SERVICE_VERSION = "1.0.0"


class SaleCreate(CamelModel):
    vehicle_id: str
    buyer_cpf: str
    buyer_name: str
    buyer_email: Optional[str] = None


class SalesResponse(CamelModel):
    sales: List[VehicleSale]
    total: int
    timestamp: datetime


def get_catalog_client() -> CatalogClient:
    return CatalogClient()


def get_repository(collection=Depends(get_collection)) -> SaleRepository:
    return SaleRepository(collection)


app = FastAPI(
    title="Sales Service API",
    description="API para registro de vendas de veículos e webhooks de pagamento",
    version=SERVICE_VERSION
)
register_error_handlers(app)


@app.on_event("startup")
async def startup_event():
    get_collection()


@app.get('/health', response_model=HealthResponse, status_code=status.HTTP_200_OK)
async def health_check(collection=Depends(get_collection)):
    if not ping(collection):
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Service unhealthy: MongoDB connection failed."
        )
    return HealthResponse(
        status='healthy',
        service=SERVICE_NAME,
        timestamp=datetime.now(),
        version=SERVICE_VERSION,
        checks={"mongodb": "connected"}
    )


@app.get('/health/live')
async def liveness():
    return {"status": "alive"}


@app.get('/health/ready')
async def readiness(collection=Depends(get_collection)):
    if not ping(collection):
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="not ready")
    return {"status": "ready"}


@app.post("/sales", response_model=VehicleSale, status_code=status.HTTP_201_CREATED)
async def create_vehicle_sale(
    request: SaleCreate,
    repository: Annotated[SaleRepository, Depends(get_repository)],
    catalog: Annotated[CatalogClient, Depends(get_catalog_client)],
):
    return await create_sale(
        repository, catalog, request.vehicle_id, request.buyer_cpf, request.buyer_name, request.buyer_email
    )


@app.get("/sales", response_model=SalesResponse)
async def get_sales(repository: Annotated[SaleRepository, Depends(get_repository)]):
    sales = repository.list_all()
    return SalesResponse(sales=sales, total=len(sales), timestamp=datetime.now())


@app.get("/sales/{sale_id}", response_model=VehicleSale)
async def get_sale_by_id(sale_id: str, repository: Annotated[SaleRepository, Depends(get_repository)]):
    return get_sale(repository, sale_id)


@app.post("/sales/payment-webhook", response_model=MessageResponse)
async def payment_webhook(
    payload: SalePaymentWebhook,
    repository: Annotated[SaleRepository, Depends(get_repository)],
    catalog: Annotated[CatalogClient, Depends(get_catalog_client)],
):
    await process_payment(repository, catalog, payload.payment_code, payload.status)
    return MessageResponse(message="Payment processed successfully")


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 8080))
    debug_mode = os.environ.get('DEBUG', '1') == '1'

    uvicorn.run(
        "services.sales_service.app:app",
        host='0.0.0.0',
        port=port,
        reload=debug_mode,
        log_level="info"
    )
