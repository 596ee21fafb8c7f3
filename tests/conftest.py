import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
import httpx
import random
import mongomock
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from services.catalog_service.app import app as catalog_app
from services.catalog_service.database import Base, get_db
from services.sales_service.app import app as sales_app, get_catalog_client
from services.sales_service.catalog_client import CatalogClient
from services.sales_service.mongo import ensure_indexes, get_collection

CATALOG_SERVICE_URL = "http://catalog-service"
SALES_SERVICE_URL = "http://sales-service"

DEFAULT_TIMEOUT = 10.0


def generate_vehicle_data(brand="Toyota", model="Corolla", year=2022, color="Prata", price=85000.0):
    """Gera dados de veículo válidos para testes."""
    return {
        "brand": brand,
        "model": model,
        "year": year,
        "color": color,
        "price": price
    }


def generate_buyer_data(vehicle_id):
    """Gera dados de comprador únicos para cada venda."""
    rand_num = random.randint(10000, 99999)
    return {
        "vehicleId": vehicle_id,
        "buyerCpf": f"{rand_num:011d}",
        "buyerName": f"Comprador {rand_num}",
        "buyerEmail": f"comprador{rand_num}@email.com"
    }


def service_client(app, base_url):
    """Cliente HTTP ligado diretamente à aplicação ASGI."""
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url=base_url, timeout=DEFAULT_TIMEOUT)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    db = session_factory()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def catalog_service(session_factory):
    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    catalog_app.dependency_overrides[get_db] = override_get_db
    yield catalog_app
    catalog_app.dependency_overrides.clear()


@pytest.fixture
def sales_collection():
    collection = mongomock.MongoClient()["sales_db"]["vehicle_sales"]
    ensure_indexes(collection)
    return collection


@pytest.fixture
def catalog_client(catalog_service):
    return CatalogClient(base_url=CATALOG_SERVICE_URL, transport=httpx.ASGITransport(app=catalog_service))


@pytest.fixture
def sales_service(sales_collection, catalog_client):
    sales_app.dependency_overrides[get_collection] = lambda: sales_collection
    sales_app.dependency_overrides[get_catalog_client] = lambda: catalog_client
    yield sales_app
    sales_app.dependency_overrides.clear()


@pytest.fixture
def sample_vehicle():
    return generate_vehicle_data()


async def create_test_vehicle(app, vehicle_data):
    """Função helper para cadastrar veículo no catálogo."""
    async with service_client(app, CATALOG_SERVICE_URL) as client:
        response = await client.post("/vehicles", json=vehicle_data)
        assert response.status_code == 201
        return response.json()


async def get_test_vehicle(app, vehicle_id):
    async with service_client(app, CATALOG_SERVICE_URL) as client:
        response = await client.get(f"/vehicles/{vehicle_id}")
        assert response.status_code == 200
        return response.json()


async def create_test_sale(app, sale_data):
    """Função helper para registrar venda."""
    async with service_client(app, SALES_SERVICE_URL) as client:
        response = await client.post("/sales", json=sale_data)
        assert response.status_code == 201
        return response.json()
