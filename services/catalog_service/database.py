# ./services/catalog_service/database.py
import os
import uuid
import logging
from datetime import datetime, timezone
from sqlalchemy import create_engine, Column, Integer, String, Numeric, DateTime, Boolean, Enum
from sqlalchemy.orm import declarative_base, sessionmaker

from shared.errors import ValidationError, InvalidStateError
from shared.models import PaymentStatus

logger = logging.getLogger(__name__)

DB_HOST = os.getenv("DB_HOST", "db")
DB_USER = os.getenv("DB_USER", "user")
DB_PASSWORD = os.getenv("DB_PASSWORD", "password")
DB_NAME = os.getenv("DB_NAME", "catalog_db")
DATABASE_URL = os.getenv("DATABASE_URL")

if not DATABASE_URL:
    DATABASE_URL = f"postgresql://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:5432/{DB_NAME}"

MIN_YEAR = int(os.getenv("VEHICLE_MIN_YEAR", "1900"))
MAX_YEAR = int(os.getenv("VEHICLE_MAX_YEAR", "2030"))

logger.info(f"Catalog database host: {DB_HOST}")

engine = create_engine(DATABASE_URL, pool_pre_ping=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def utcnow():
    return datetime.now(timezone.utc)


def _require_text(value, field: str):
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required")


def _require_positive_price(price):
    if price is None or price <= 0:
        raise ValidationError("Price must be greater than 0")


class VehicleDB(Base):
    """Catalog vehicle: inventory data plus the sale/payment sub-state.

    A vehicle is sold iff buyer_cpf, sale_date and payment_code are all set;
    the only way back to available is a Cancelled payment status.
    """
    __tablename__ = "vehicles"
    id = Column(String(36), primary_key=True, index=True)
    brand = Column(String(100), nullable=False, index=True)
    model = Column(String(100), nullable=False, index=True)
    year = Column(Integer, nullable=False)
    color = Column(String(50))
    price = Column(Numeric(12, 2, asdecimal=False), nullable=False)
    is_sold = Column(Boolean, default=False, nullable=False)
    buyer_cpf = Column(String(20), nullable=True)
    sale_date = Column(DateTime(timezone=True), nullable=True)
    payment_code = Column(String(64), unique=True, nullable=True, index=True)
    payment_status = Column(
        Enum(PaymentStatus, native_enum=False, length=20,
             values_callable=lambda enum: [member.value for member in enum]),
        default=PaymentStatus.PENDING, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), nullable=True)
    version = Column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @classmethod
    def register(cls, brand: str, model: str, year: int, color: str, price: float) -> "VehicleDB":
        _require_text(brand, "Brand")
        _require_text(model, "Model")
        if year is None or not MIN_YEAR <= year <= MAX_YEAR:
            raise ValidationError(f"Year must be between {MIN_YEAR} and {MAX_YEAR}")
        _require_positive_price(price)

        return cls(
            id=str(uuid.uuid4()),
            brand=brand,
            model=model,
            year=year,
            color=color,
            price=price,
            is_sold=False,
            payment_status=PaymentStatus.PENDING,
            created_at=utcnow(),
        )

    def update_details(self, brand: str, model: str, year: int, color: str, price: float):
        # Apenas marca e preço são validados aqui (ano/modelo seguem sem checagem)
        _require_text(brand, "Brand")
        _require_positive_price(price)

        self.brand = brand
        self.model = model
        self.year = year
        self.color = color
        self.price = price
        self.updated_at = utcnow()

    def register_sale(self, buyer_cpf: str, payment_code: str):
        if self.is_sold:
            raise InvalidStateError("Vehicle is already sold")
        _require_text(buyer_cpf, "Buyer CPF")
        _require_text(payment_code, "Payment code")

        now = utcnow()
        self.buyer_cpf = buyer_cpf
        self.sale_date = now
        self.payment_code = payment_code
        self.payment_status = PaymentStatus.PENDING
        self.is_sold = True
        self.updated_at = now
        logger.info(f"Vehicle {self.id} sold to buyer {buyer_cpf} with payment code {payment_code}.")

    def update_payment_status(self, payment_code: str, status: PaymentStatus):
        if not self.is_sold:
            raise InvalidStateError("Vehicle is not sold")

        self.payment_status = status
        # O código informado substitui o original, mesmo que seja diferente
        self.payment_code = payment_code

        if status == PaymentStatus.CANCELLED:
            self.is_sold = False
            self.buyer_cpf = None
            self.sale_date = None
            self.payment_code = None
            logger.info(f"Vehicle {self.id} sale reversed after cancelled payment.")

        self.updated_at = utcnow()

    @property
    def is_available(self) -> bool:
        return not self.is_sold


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_tables():
    logger.info("Creating database tables for Catalog Service...")
    Base.metadata.create_all(bind=engine)
    logger.info("Catalog Service database tables created.")
