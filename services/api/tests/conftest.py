from decimal import Decimal

import pytest
import fakeredis
import fakeredis.aioredis
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from bakehouse.main import app
from bakehouse.db import Base, get_db
from bakehouse.deps import get_gateway
from bakehouse.infra import redis_client
from bakehouse.models import BillOfMaterial, Ingredient, Product
from bakehouse.routers.orders import limiter
from bakehouse.services.payments import MockPaymentGateway

# --- Test Database Setup ---

SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool  # One shared connection so every session sees the same in-memory DB
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


@pytest.fixture(autouse=True)
def setup_database():
    """Create tables before each test, drop after."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def reset_rate_limits():
    limiter.reset()
    yield


@pytest.fixture
def gateway():
    return MockPaymentGateway()


@pytest.fixture
def client(gateway):
    """Test client with DB and payment gateway overrides."""
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_gateway] = lambda: gateway
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def db_session():
    """Direct database session for setup and assertions."""
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def mock_redis():
    server = fakeredis.FakeServer()
    redis_client._redis_async = fakeredis.aioredis.FakeRedis(server=server, decode_responses=True)
    yield
    redis_client._redis_async = None


# --- Data helpers ---

@pytest.fixture
def make_ingredient(db_session):
    def _make(name="Spelt Flour", on_hand="100", unit="lb", reorder_threshold="0"):
        ingredient = Ingredient(
            name=name,
            unit=unit,
            on_hand=Decimal(on_hand),
            reorder_threshold=Decimal(reorder_threshold),
        )
        db_session.add(ingredient)
        db_session.commit()
        db_session.refresh(ingredient)
        return ingredient
    return _make


@pytest.fixture
def make_product(db_session):
    def _make(name="Plain Bagel", price="2.00", bom=None, is_active=True):
        """``bom`` is a list of (ingredient, quantity per unit) pairs."""
        product = Product(name=name, price=Decimal(price), is_active=is_active)
        db_session.add(product)
        db_session.flush()
        for ingredient, quantity in bom or []:
            db_session.add(BillOfMaterial(
                product_id=product.id, ingredient_id=ingredient.id, quantity=Decimal(quantity)
            ))
        db_session.commit()
        db_session.refresh(product)
        return product
    return _make
