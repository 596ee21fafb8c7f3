# ./services/catalog_service/queries.py
"""Read side of the catalog: listing and filtered search over vehicles.

Queries never raise on a store failure. They return a ``CatalogResult``
tagged as either ``ok`` (with a possibly empty list) or ``error`` (with an
``ErrorKind``), so an empty catalog is never confused with an unreachable
database. Invalid filters are the exception: they raise ``ValidationError``
before the store is touched.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shared.errors import ValidationError
from services.catalog_service.database import VehicleDB

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    UNAVAILABLE = "unavailable"
    INTERNAL = "internal"


@dataclass
class CatalogResult:
    vehicles: List[VehicleDB] = field(default_factory=list)
    error: Optional[ErrorKind] = None
    detail: Optional[str] = None

    @classmethod
    def ok(cls, vehicles: List[VehicleDB]) -> "CatalogResult":
        return cls(vehicles=list(vehicles))

    @classmethod
    def failure(cls, kind: ErrorKind, detail: str) -> "CatalogResult":
        return cls(error=kind, detail=detail)

    @property
    def is_ok(self) -> bool:
        return self.error is None

    def first(self) -> Optional[VehicleDB]:
        return self.vehicles[0] if self.vehicles else None


class SearchFilters(BaseModel):
    brand: Optional[str] = None
    model: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    year: Optional[int] = None
    min_year: Optional[int] = None
    max_year: Optional[int] = None
    color: Optional[str] = None
    is_available: Optional[bool] = None

    def validate_ranges(self):
        for name in ("min_price", "max_price"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValidationError(f"{name} cannot be negative")
        if self.min_price is not None and self.max_price is not None and self.min_price > self.max_price:
            raise ValidationError("min_price cannot be greater than max_price")
        if self.min_year is not None and self.max_year is not None and self.min_year > self.max_year:
            raise ValidationError("min_year cannot be greater than max_year")


class CatalogQueryService:
    def __init__(self, db: Session):
        self.db = db

    def _run(self, query, description: str) -> CatalogResult:
        try:
            vehicles = query.order_by(VehicleDB.price.asc()).all()
        except SQLAlchemyError as e:
            logger.error(f"Catalog store unavailable while {description}: {e}")
            self.db.rollback()
            return CatalogResult.failure(ErrorKind.UNAVAILABLE, str(e))
        except Exception as e:
            logger.exception(f"Unexpected error while {description}")
            return CatalogResult.failure(ErrorKind.INTERNAL, str(e))
        return CatalogResult.ok(vehicles)

    def get_all(self) -> CatalogResult:
        return self._run(self.db.query(VehicleDB), "listing vehicles")

    def get_available(self) -> CatalogResult:
        query = self.db.query(VehicleDB).filter(VehicleDB.is_sold == False)  # noqa: E712
        return self._run(query, "listing available vehicles")

    def get_sold(self) -> CatalogResult:
        query = self.db.query(VehicleDB).filter(VehicleDB.is_sold == True)  # noqa: E712
        return self._run(query, "listing sold vehicles")

    def get_by_id(self, vehicle_id: str) -> CatalogResult:
        query = self.db.query(VehicleDB).filter(VehicleDB.id == vehicle_id)
        return self._run(query, f"fetching vehicle {vehicle_id}")

    def search(self, filters: SearchFilters) -> CatalogResult:
        filters.validate_ranges()

        query = self.db.query(VehicleDB)
        if filters.brand:
            query = query.filter(func.lower(VehicleDB.brand).contains(filters.brand.strip().lower()))
        if filters.model:
            query = query.filter(func.lower(VehicleDB.model).contains(filters.model.strip().lower()))
        if filters.color:
            query = query.filter(func.lower(VehicleDB.color) == filters.color.strip().lower())
        if filters.min_price is not None:
            query = query.filter(VehicleDB.price >= filters.min_price)
        if filters.max_price is not None:
            query = query.filter(VehicleDB.price <= filters.max_price)
        if filters.year is not None:
            query = query.filter(VehicleDB.year == filters.year)
        if filters.min_year is not None:
            query = query.filter(VehicleDB.year >= filters.min_year)
        if filters.max_year is not None:
            query = query.filter(VehicleDB.year <= filters.max_year)
        if filters.is_available is not None:
            query = query.filter(VehicleDB.is_sold == (not filters.is_available))

        return self._run(query, "searching vehicles")
