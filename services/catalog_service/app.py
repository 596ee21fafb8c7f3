# ./services/catalog_service/app.py
from fastapi import FastAPI, HTTPException, Query, status, Depends
from typing import List, Optional, Annotated
import os
import logging
from datetime import datetime
import uvicorn
from pydantic import ConfigDict
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from shared.errors import (
    ConflictError, NotFoundError, UnavailableError, ValidationError, register_error_handlers
)
from shared.models import (
    CamelModel, HealthResponse, MessageResponse, PaymentStatus, RegisterSaleCommand,
    VehiclePaymentWebhook, parse_payment_status
)
from services.catalog_service.database import VehicleDB, get_db, create_tables
from services.catalog_service.queries import CatalogQueryService, CatalogResult, ErrorKind, SearchFilters

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SERVICE_NAME = "catalog-service"
SERVICE_VERSION = "1.0.0"


class VehicleCreate(CamelModel):
    brand: str
    model: str
    year: int
    color: str
    price: float


class VehicleUpdate(VehicleCreate):
    id: str


class VehicleResponse(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    brand: str
    model: str
    year: int
    color: Optional[str]
    price: float
    is_sold: bool
    buyer_cpf: Optional[str] = None
    sale_date: Optional[datetime] = None
    payment_code: Optional[str] = None
    payment_status: PaymentStatus
    created_at: datetime
    updated_at: Optional[datetime] = None


class VehiclesResponse(CamelModel):
    vehicles: List[VehicleResponse]
    total: int
    timestamp: datetime


app = FastAPI(
    title="Catalog Service API",
    description="API para gerenciamento do catálogo de veículos",
    version=SERVICE_VERSION
)
register_error_handlers(app)


@app.on_event("startup")
async def startup_event():
    create_tables()


def check_database(db: Session) -> dict:
    try:
        db.execute(text("SELECT 1"))
        return {"database": "connected"}
    except SQLAlchemyError as e:
        logger.error(f"Database connection error: {e}")
        return {"database": f"disconnected ({e})"}


@app.get('/health', response_model=HealthResponse, status_code=status.HTTP_200_OK)
async def health_check(db: Annotated[Session, Depends(get_db)]):
    checks = check_database(db)
    if checks["database"] != "connected":
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Service unhealthy: Database connection failed. {checks['database']}"
        )
    return HealthResponse(
        status='healthy',
        service=SERVICE_NAME,
        timestamp=datetime.now(),
        version=SERVICE_VERSION,
        checks=checks
    )


@app.get('/health/live')
async def liveness():
    return {"status": "alive"}


@app.get('/health/ready')
async def readiness(db: Annotated[Session, Depends(get_db)]):
    checks = check_database(db)
    if checks["database"] != "connected":
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="not ready")
    return {"status": "ready"}


def present(result: CatalogResult, action: str) -> VehiclesResponse:
    if not result.is_ok:
        if result.error == ErrorKind.UNAVAILABLE:
            raise UnavailableError("Catalog service temporarily unavailable", result.detail)
        raise UnavailableError(f"Error while {action}", result.detail)
    vehicles = [VehicleResponse.model_validate(v) for v in result.vehicles]
    return VehiclesResponse(vehicles=vehicles, total=len(vehicles), timestamp=datetime.now())


def find_vehicle(db: Session, vehicle_id: str) -> VehicleDB:
    vehicle = db.query(VehicleDB).filter(VehicleDB.id == vehicle_id).first()
    if not vehicle:
        raise NotFoundError("Vehicle not found")
    return vehicle


def save(db: Session, vehicle: VehicleDB, delete: bool = False):
    vehicle_id = vehicle.id
    try:
        if delete:
            db.delete(vehicle)
        else:
            db.add(vehicle)
        db.commit()
        if not delete:
            db.refresh(vehicle)
    except (IntegrityError, StaleDataError) as e:
        db.rollback()
        logger.warning(f"Concurrent or duplicate write rejected for vehicle {vehicle_id}: {e}")
        raise ConflictError("Vehicle was modified by another request or payment code already in use")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error saving vehicle {vehicle_id}: {e}")
        raise UnavailableError("Catalog database unavailable", str(e))


@app.get("/vehicles", response_model=VehiclesResponse)
async def get_vehicles(db: Annotated[Session, Depends(get_db)]):
    return present(CatalogQueryService(db).get_all(), "listing vehicles")


@app.get("/vehicles/search", response_model=VehiclesResponse)
async def search_vehicles(
    db: Annotated[Session, Depends(get_db)],
    brand: Optional[str] = None,
    model: Optional[str] = None,
    min_price: Annotated[Optional[float], Query(alias="minPrice")] = None,
    max_price: Annotated[Optional[float], Query(alias="maxPrice")] = None,
    year: Optional[int] = None,
    min_year: Annotated[Optional[int], Query(alias="minYear")] = None,
    max_year: Annotated[Optional[int], Query(alias="maxYear")] = None,
    color: Optional[str] = None,
    is_available: Annotated[Optional[bool], Query(alias="isAvailable")] = None,
):
    filters = SearchFilters(
        brand=brand, model=model, min_price=min_price, max_price=max_price, year=year,
        min_year=min_year, max_year=max_year, color=color, is_available=is_available
    )
    return present(CatalogQueryService(db).search(filters), "searching vehicles")


@app.get("/vehicles/available", response_model=VehiclesResponse)
async def get_available_vehicles(db: Annotated[Session, Depends(get_db)]):
    return present(CatalogQueryService(db).get_available(), "listing available vehicles")


@app.get("/vehicles/sold", response_model=VehiclesResponse)
async def get_sold_vehicles(db: Annotated[Session, Depends(get_db)]):
    return present(CatalogQueryService(db).get_sold(), "listing sold vehicles")


@app.get("/vehicles/{vehicle_id}", response_model=VehicleResponse)
async def get_vehicle(vehicle_id: str, db: Annotated[Session, Depends(get_db)]):
    result = CatalogQueryService(db).get_by_id(vehicle_id)
    vehicle = present(result, "fetching vehicle").vehicles
    if not vehicle:
        raise NotFoundError("Vehicle not found")
    return vehicle[0]


@app.post("/vehicles", response_model=VehicleResponse, status_code=status.HTTP_201_CREATED)
async def create_vehicle(vehicle: VehicleCreate, db: Annotated[Session, Depends(get_db)]):
    db_vehicle = VehicleDB.register(vehicle.brand, vehicle.model, vehicle.year, vehicle.color, vehicle.price)
    save(db, db_vehicle)
    logger.info(f"Vehicle {db_vehicle.id} registered ({db_vehicle.brand} {db_vehicle.model}).")
    return db_vehicle


@app.put("/vehicles/{vehicle_id}", response_model=VehicleResponse)
async def update_vehicle(vehicle_id: str, vehicle_update: VehicleUpdate, db: Annotated[Session, Depends(get_db)]):
    if vehicle_update.id != vehicle_id:
        raise ValidationError("ID mismatch")

    db_vehicle = find_vehicle(db, vehicle_id)
    db_vehicle.update_details(
        vehicle_update.brand, vehicle_update.model, vehicle_update.year,
        vehicle_update.color, vehicle_update.price
    )
    save(db, db_vehicle)
    logger.info(f"Vehicle {vehicle_id} updated.")
    return db_vehicle


@app.delete("/vehicles/{vehicle_id}", response_model=MessageResponse)
async def delete_vehicle(vehicle_id: str, db: Annotated[Session, Depends(get_db)]):
    db_vehicle = find_vehicle(db, vehicle_id)
    if db_vehicle.is_sold:
        raise ConflictError("Cannot delete a sold vehicle")

    save(db, db_vehicle, delete=True)
    logger.info(f"Vehicle {vehicle_id} deleted.")
    return MessageResponse(message="Vehicle deleted successfully")


@app.post("/vehicles/{vehicle_id}/sale", response_model=VehicleResponse)
async def register_vehicle_sale(vehicle_id: str, command: RegisterSaleCommand, db: Annotated[Session, Depends(get_db)]):
    db_vehicle = find_vehicle(db, vehicle_id)
    db_vehicle.register_sale(command.buyer_cpf, command.payment_code)
    save(db, db_vehicle)
    return db_vehicle


@app.post("/vehicles/payment-webhook", response_model=MessageResponse)
async def payment_webhook(payload: VehiclePaymentWebhook, db: Annotated[Session, Depends(get_db)]):
    if not payload.payment_code.strip():
        raise ValidationError("Payment code is required")
    payment_status = parse_payment_status(payload.status)

    query = db.query(VehicleDB)
    if payload.vehicle_id:
        db_vehicle = query.filter(VehicleDB.id == payload.vehicle_id).first()
    else:
        db_vehicle = query.filter(VehicleDB.payment_code == payload.payment_code).first()
    if not db_vehicle:
        raise NotFoundError("Payment code not found")

    if (payment_status == PaymentStatus.CANCELLED and db_vehicle.is_sold
            and db_vehicle.payment_code != payload.payment_code):
        # Cancelamento de uma venda anterior não libera a reserva atual
        logger.warning(
            f"Ignoring cancellation {payload.payment_code} for vehicle {db_vehicle.id}: "
            f"current reservation is {db_vehicle.payment_code}.")
        return MessageResponse(message="Cancellation does not match current sale; ignored")

    db_vehicle.update_payment_status(payload.payment_code, payment_status)
    save(db, db_vehicle)
    logger.info(f"Vehicle {db_vehicle.id} payment status set to {payment_status.value}.")
    return MessageResponse(message="Payment status updated successfully")


if __name__ == '__main__':
    port = int(os.environ.get('PORT', 8080))
    debug_mode = os.environ.get('DEBUG', '1') == '1'

    uvicorn.run(
        "services.catalog_service.app:app",
        host='0.0.0.0',
        port=port,
        reload=debug_mode,
        log_level="info"
    )
