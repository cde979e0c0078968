"""Pytest fixtures for testing"""

import pytest
from decimal import Decimal
from typing import Generator
from unittest.mock import AsyncMock
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, Session
from settlement_engine.api.main import create_app
from settlement_engine.api.dependencies import get_gateway_client, get_notification_client
from settlement_engine.domain.models import GatewayCharge
from settlement_engine.infrastructure.clients.notifications import NotificationClient
from settlement_engine.infrastructure.clients.payment_gateway import PaymentGatewayClient
from settlement_engine.infrastructure.database.models import Base, Customer, CustomerProduct, Product, Seller
from settlement_engine.infrastructure.database.session import get_db
from settlement_engine.services.accounts import create_bank_account


# Test database
TEST_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(TEST_DATABASE_URL, connect_args={"check_same_thread": False})
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db() -> Generator[Session, None, None]:
    """Create test database and session"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def gateway() -> AsyncMock:
    """Payment gateway double issuing a charge per call"""
    gateway = AsyncMock(spec=PaymentGatewayClient)
    counter = {"n": 0}

    async def create_charge(charge):
        counter["n"] += 1
        return GatewayCharge(
            charge_id=f"chg_{counter['n']}",
            pix_code=f"00020126PIX{counter['n']}",
            digitable_line=f"23790.00000 {counter['n']:05d}",
            barcode=f"2379000000{counter['n']:05d}",
        )

    gateway.create_charge.side_effect = create_charge
    return gateway


@pytest.fixture
def notifier() -> AsyncMock:
    notifier = AsyncMock(spec=NotificationClient)
    notifier.send_order_created.return_value = None
    return notifier


@pytest.fixture
def client(db: Session, gateway: AsyncMock, notifier: AsyncMock) -> TestClient:
    """Create FastAPI test client with test database and mocked integrations"""
    app = create_app()

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway_client] = lambda: gateway
    app.dependency_overrides[get_notification_client] = lambda: notifier
    return TestClient(app)


@pytest.fixture
def seller(db: Session) -> Seller:
    seller = Seller(name="Ana Vendas", commission_rate=Decimal("5.00"), max_discount_percent=Decimal("10.00"))
    db.add(seller)
    db.commit()
    return seller


@pytest.fixture
def customer(db: Session, seller: Seller) -> Customer:
    """Regular customer with 1000.00 of credit and 30-day terms"""
    customer = Customer(
        name="Mercado Bom Preço",
        tax_id="12.345.678/0001-90",
        customer_type="REGULAR",
        credit_limit=Decimal("1000.00"),
        available_credit=Decimal("1000.00"),
        payment_terms=30,
        seller_id=seller.id,
    )
    db.add(customer)
    db.commit()
    return customer


@pytest.fixture
def walk_in_customer(db: Session) -> Customer:
    """Final consumer: pays on the spot, never on boleto"""
    customer = Customer(
        name="João Balcão",
        tax_id="123.456.789-09",
        customer_type="CONSUMIDOR_FINAL",
        credit_limit=Decimal("500.00"),
        available_credit=Decimal("500.00"),
        payment_terms=30,
    )
    db.add(customer)
    db.commit()
    return customer


@pytest.fixture
def products(db: Session) -> dict[str, Product]:
    """Catalog: bread at 10/12 and cake at 40/50 (wholesale/retail)"""
    bread = Product(name="Pão de forma", price_wholesale=Decimal("10.00"), price_retail=Decimal("12.00"))
    cake = Product(name="Bolo de cenoura", price_wholesale=Decimal("40.00"), price_retail=Decimal("50.00"))
    db.add_all([bread, cake])
    db.commit()
    return {"bread": bread, "cake": cake}


@pytest.fixture
def custom_price(db: Session, customer: Customer, products: dict[str, Product]) -> CustomerProduct:
    negotiated = CustomerProduct(customer_id=customer.id, product_id=products["cake"].id, custom_price=Decimal("35.00"))
    db.add(negotiated)
    db.commit()
    return negotiated


@pytest.fixture
def bank_account(db: Session):
    """Checking account opened with 500.00"""
    return create_bank_account(db, "Conta Corrente", Decimal("500.00"), bank_name="Banco do Brasil")


@pytest.fixture
def savings_account(db: Session):
    return create_bank_account(db, "Poupança", Decimal("0"), account_type="SAVINGS")
