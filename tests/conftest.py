import itertools
import os
from decimal import Decimal
from typing import Generator
from unittest.mock import MagicMock

# Override settings for tests before importing app modules
TEST_DATABASE_URL = "sqlite:///:memory:"
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["JWT_SECRET"] = "test-secret-key-for-testing-only"
os.environ["REVOLUT_SECRET_KEY"] = "sk_test_mock"
os.environ["REVOLUT_MODE"] = "sandbox"
os.environ["SITE_PUBLIC_BASE_URL"] = "https://shop.example.com"

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from marketplace.config import settings
from marketplace.dependencies import get_gateway_client, get_notifier
from marketplace.main import app
from marketplace.models import ArtProduct, OtherProduct, OtherVariant, User
from marketplace.models.database import Base, get_db
from marketplace.services.revolut_service import RevolutClient

# Create test database engine
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db() -> Generator[Session, None, None]:
    """Create a fresh database for each test."""
    Base.metadata.create_all(bind=test_engine)
    db_session = TestSessionLocal()
    try:
        yield db_session
    finally:
        db_session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture
def gateway() -> MagicMock:
    """Revolut client double; every create_order call hands out a new remote order id."""
    mock = MagicMock(spec=RevolutClient)
    counter = itertools.count(1)

    def create_order(payload: dict) -> dict:
        number = next(counter)
        return {
            "id": f"rev_order_{number}",
            "token": f"rev_token_{number}",
            "amount": payload["amount"],
            "currency": payload["currency"],
            "state": "pending",
        }

    mock.create_order.side_effect = create_order
    mock.update_order.return_value = {"id": "rev_order_1", "state": "pending"}
    mock.cancel_order.return_value = {"id": "rev_order_1", "state": "cancelled"}
    return mock


@pytest.fixture
def notifier() -> MagicMock:
    return MagicMock()


@pytest.fixture(scope="function")
def client(db: Session, gateway: MagicMock, notifier: MagicMock) -> Generator[TestClient, None, None]:
    """Create a test client with database, gateway and notifier overrides."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway_client] = lambda: gateway
    app.dependency_overrides[get_notifier] = lambda: notifier
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def seller(db: Session) -> User:
    user = User(email="seller@example.com", full_name="Seller One", slug="seller-one", role="seller")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def buyer(db: Session) -> User:
    user = User(email="buyer@example.com", full_name="Buyer One", role="buyer")
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def art_product(db: Session, seller: User) -> ArtProduct:
    """A visible, approved, unsold unique piece priced at 120.00."""
    product = ArtProduct(
        seller_id=seller.id,
        name="Blue Horizon",
        slug="blue-horizon",
        description="<p>Oil on canvas &amp; wood frame</p>",
        price=Decimal("120.00"),
        type="painting",
        basename="blue horizon.jpg",
        visible=True,
        is_sold=False,
        status="approved",
    )
    db.add(product)
    db.commit()
    db.refresh(product)
    return product


@pytest.fixture
def other_product(db: Session, seller: User) -> OtherProduct:
    """A variant product (tote bag) with two sizes: S (stock 2) and M (stock 1)."""
    product = OtherProduct(
        seller_id=seller.id,
        name="Tote Bag",
        slug="tote-bag",
        description="Printed cotton bag",
        price=Decimal("15.50"),
        basename="tote.png",
        visible=True,
        is_sold=False,
        status="approved",
    )
    db.add(product)
    db.flush()
    db.add_all(
        [
            OtherVariant(other_id=product.id, key="S", stock=2),
            OtherVariant(other_id=product.id, key="M", stock=1),
        ]
    )
    db.commit()
    db.refresh(product)
    return product


@pytest.fixture
def variant_s(other_product: OtherProduct) -> OtherVariant:
    return next(variant for variant in other_product.variants if variant.key == "S")


@pytest.fixture
def variant_m(other_product: OtherProduct) -> OtherVariant:
    return next(variant for variant in other_product.variants if variant.key == "M")


def make_token(user: User) -> str:
    return jwt.encode({"sub": str(user.id)}, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


@pytest.fixture
def buyer_headers(buyer: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(buyer)}"}


@pytest.fixture
def seller_headers(seller: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(seller)}"}


def delivery(cost: str = "5.00", method_id: int = 2) -> dict:
    return {"methodId": method_id, "methodName": "Courier", "methodType": "delivery", "cost": cost}


def pickup() -> dict:
    return {"methodId": 9, "methodName": "Studio pickup", "methodType": "pickup", "cost": "0"}


@pytest.fixture
def checkout_body(art_product: ArtProduct) -> dict:
    return {
        "items": [{"type": "art", "id": art_product.id, "shipping": delivery()}],
        "email": "guest@example.com",
        "phone": "+34600000000",
        "fullName": "Guest Buyer",
        "deliveryAddress": {
            "line1": "Calle Mayor 1",
            "postalCode": "28013",
            "city": "Madrid",
            "province": "Madrid",
            "country": "es",
            "lat": 40.4168,
            "lng": -3.7038,
        },
    }
