import pytest

from shared.errors import InvalidStateError, ValidationError
from shared.models import PaymentStatus
from services.catalog_service.database import VehicleDB


def new_vehicle(**overrides):
    data = {"brand": "Toyota", "model": "Corolla", "year": 2022, "color": "Prata", "price": 85000.0}
    data.update(overrides)
    return VehicleDB.register(**data)


class TestVehicleRegistration:
    """Testes do cadastro de veículos."""

    @pytest.mark.parametrize("year", [1900, 1999, 2030])
    def test_register_valid_vehicle(self, year):
        vehicle = new_vehicle(year=year)

        assert vehicle.id
        assert vehicle.is_sold is False
        assert vehicle.payment_status == PaymentStatus.PENDING
        assert vehicle.buyer_cpf is None
        assert vehicle.payment_code is None
        assert vehicle.created_at is not None
        assert vehicle.updated_at is None

    def test_register_generates_distinct_ids(self):
        assert new_vehicle().id != new_vehicle().id

    @pytest.mark.parametrize("overrides", [
        {"brand": ""},
        {"brand": "   "},
        {"model": ""},
        {"year": 1899},
        {"year": 2031},
        {"price": 0},
        {"price": -10.0},
    ])
    def test_register_invalid_vehicle(self, overrides):
        with pytest.raises(ValidationError):
            new_vehicle(**overrides)


class TestVehicleUpdate:
    """Testes da atualização de dados do veículo."""

    def test_update_details(self):
        vehicle = new_vehicle()
        vehicle.update_details("Honda", "Civic", 2021, "Preto", 95000.0)

        assert vehicle.brand == "Honda"
        assert vehicle.model == "Civic"
        assert vehicle.price == 95000.0
        assert vehicle.updated_at is not None

    @pytest.mark.parametrize("brand, price", [("", 1000.0), ("Honda", 0), ("Honda", -1)])
    def test_update_rejects_invalid_brand_or_price(self, brand, price):
        vehicle = new_vehicle()
        with pytest.raises(ValidationError):
            vehicle.update_details(brand, "Civic", 2021, "Preto", price)
        assert vehicle.brand == "Toyota"

    def test_update_does_not_check_year_or_model(self):
        """Ano e modelo não são validados na atualização."""
        vehicle = new_vehicle()
        vehicle.update_details("Toyota", "", 1800, "Prata", 1000.0)
        assert vehicle.year == 1800
        assert vehicle.model == ""


class TestVehicleSaleStateMachine:
    """Testes da máquina de estados de venda/pagamento."""

    def test_register_sale(self):
        vehicle = new_vehicle()
        vehicle.register_sale("12345678901", "PAY-20250101-ABCDEF12")

        assert vehicle.is_sold is True
        assert vehicle.buyer_cpf == "12345678901"
        assert vehicle.sale_date is not None
        assert vehicle.payment_code == "PAY-20250101-ABCDEF12"
        assert vehicle.payment_status == PaymentStatus.PENDING
        assert vehicle.updated_at is not None

    def test_register_sale_on_sold_vehicle_keeps_original_buyer(self):
        vehicle = new_vehicle()
        vehicle.register_sale("12345678901", "PAY-1")

        with pytest.raises(InvalidStateError):
            vehicle.register_sale("99999999999", "PAY-2")
        with pytest.raises(InvalidStateError):
            vehicle.register_sale("", "")

        assert vehicle.buyer_cpf == "12345678901"
        assert vehicle.payment_code == "PAY-1"

    @pytest.mark.parametrize("buyer_cpf, payment_code", [("", "PAY-1"), ("123", ""), ("  ", "PAY-1")])
    def test_register_sale_requires_buyer_and_code(self, buyer_cpf, payment_code):
        vehicle = new_vehicle()
        with pytest.raises(ValidationError):
            vehicle.register_sale(buyer_cpf, payment_code)
        assert vehicle.is_sold is False

    def test_paid_keeps_vehicle_sold(self):
        vehicle = new_vehicle()
        vehicle.register_sale("12345678901", "PAY-1")
        vehicle.update_payment_status("PAY-1", PaymentStatus.PAID)

        assert vehicle.is_sold is True
        assert vehicle.payment_status == PaymentStatus.PAID
        assert vehicle.buyer_cpf == "12345678901"

    def test_failed_payment_keeps_vehicle_sold(self):
        """Pagamento recusado não libera o veículo."""
        vehicle = new_vehicle()
        vehicle.register_sale("12345678901", "PAY-1")
        vehicle.update_payment_status("PAY-1", PaymentStatus.FAILED)

        assert vehicle.is_sold is True
        assert vehicle.payment_status == PaymentStatus.FAILED

    @pytest.mark.parametrize("previous", [PaymentStatus.PENDING, PaymentStatus.PAID, PaymentStatus.FAILED])
    def test_cancelled_reverses_sale(self, previous):
        vehicle = new_vehicle()
        vehicle.register_sale("12345678901", "PAY-1")
        if previous != PaymentStatus.PENDING:
            vehicle.update_payment_status("PAY-1", previous)

        vehicle.update_payment_status("PAY-1", PaymentStatus.CANCELLED)

        assert vehicle.is_sold is False
        assert vehicle.buyer_cpf is None
        assert vehicle.sale_date is None
        assert vehicle.payment_code is None
        assert vehicle.payment_status == PaymentStatus.CANCELLED

    def test_vehicle_can_be_sold_again_after_cancellation(self):
        vehicle = new_vehicle()
        vehicle.register_sale("12345678901", "PAY-1")
        vehicle.update_payment_status("PAY-1", PaymentStatus.CANCELLED)

        vehicle.register_sale("10987654321", "PAY-2")
        assert vehicle.is_sold is True
        assert vehicle.payment_status == PaymentStatus.PENDING

    @pytest.mark.parametrize("status", list(PaymentStatus))
    def test_update_payment_status_requires_sold_vehicle(self, status):
        vehicle = new_vehicle()
        with pytest.raises(InvalidStateError):
            vehicle.update_payment_status("PAY-1", status)

    def test_update_payment_status_overwrites_payment_code(self):
        """O código recebido no webhook substitui o código original, mesmo se diferente."""
        vehicle = new_vehicle()
        vehicle.register_sale("12345678901", "PAY-ORIGINAL")
        vehicle.update_payment_status("PAY-OUTRO", PaymentStatus.PAID)

        assert vehicle.payment_code == "PAY-OUTRO"
