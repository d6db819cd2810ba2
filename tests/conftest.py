"""
Shared fixtures for the cart service and cart client tests.

External systems are replaced with in-process stand-ins:
- Redis -> fakeredis (real WATCH/MULTI semantics)
- Postgres -> in-memory SQLite shared across connections
- Kafka -> MagicMock producer
- Nominatim -> stub geocoder / httpx.MockTransport
"""

from typing import Dict, Optional
from unittest.mock import MagicMock

import fakeredis
import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from services.cart_service import models  # noqa: F401
from services.cart_service.cart import ShippingPolicy
from services.cart_service.cart_repository import CartRepository
from services.cart_service.catalog_repository import CatalogRepository
from services.cart_service.config import get_settings
from services.cart_service.dependencies import (
    get_cart_repository,
    get_event_producer,
    get_geocoder,
    get_quote_service,
)
from services.cart_service.main import app
from services.cart_service.shipping_quote import ShippingQuoteService
from shared.database import Base, get_db
from shared.shipping import Coordinates

TEST_USER_ID = "65f1c0aa11bb22cc33dd44ee"

# Real coordinates of the cities used across the tests
CITY_COORDINATES = {
    "nairobi": Coordinates(latitude=-1.286389, longitude=36.817223),
    "kisumu": Coordinates(latitude=-0.091702, longitude=34.767956),
    "mombasa": Coordinates(latitude=-4.043477, longitude=39.668206),
    "thika": Coordinates(latitude=-1.033333, longitude=37.069444),
}


class StubGeocoder:
    """Geocoder answering from a fixed table and recording every lookup."""

    def __init__(self, table: Optional[Dict[str, Coordinates]] = None):
        self.table = dict(CITY_COORDINATES if table is None else table)
        self.calls = []

    async def geocode_city(self, city: str) -> Optional[Coordinates]:
        self.calls.append(city)
        return self.table.get(city.strip().lower())

    async def aclose(self) -> None:
        pass


def make_token(user_id: str = TEST_USER_ID, claim: str = "id", secret: Optional[str] = None) -> str:
    return jwt.encode({claim: user_id}, secret or get_settings().jwt_secret, algorithm="HS256")


def auth_headers(user_id: str = TEST_USER_ID) -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token(user_id)}"}


@pytest.fixture
def redis_client():
    client = fakeredis.FakeRedis(decode_responses=True)
    yield client
    client.flushall()


@pytest.fixture
def cart_repository(redis_client) -> CartRepository:
    return CartRepository(redis_client, ShippingPolicy())


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def catalog(db_session) -> CatalogRepository:
    """Catalog with one seller that has saved coordinates, one that only has a city, and one broken product."""
    repo = CatalogRepository(db_session)
    repo.create_seller("Westlands Woodworks", "Nairobi", "Waiyaki Way", -1.2676, 36.8108, seller_id="SELL-NBO")
    repo.create_seller("Lakeside Interiors", "Kisumu", "Oginga Odinga Street", seller_id="SELL-KSM")
    repo.create_seller("Nameless Seller", seller_id="SELL-NOWHERE")

    repo.create_product("Three Seater Sofa", 1000, seller_id="SELL-NBO", category="Living Room", stock=5,
                        product_id="PROD-SOFA")
    repo.create_product("Dining Table", 48000, seller_id="SELL-NBO", category="Dining", stock=2,
                        product_id="PROD-TABLE")
    repo.create_product("Study Desk", 16000, seller_id="SELL-KSM", category="Office", stock=10,
                        product_id="PROD-DESK")
    repo.create_product("Ghost Chair", None, seller_id="SELL-NBO", product_id="PROD-NOPRICE")
    repo.create_product("Orphan Stool", 2500, seller_id="SELL-NOWHERE", product_id="PROD-STOOL")
    db_session.commit()
    return repo


@pytest.fixture
def producer() -> MagicMock:
    return MagicMock()


@pytest.fixture
def geocoder() -> StubGeocoder:
    return StubGeocoder()


@pytest.fixture
def quote_service(geocoder) -> ShippingQuoteService:
    return ShippingQuoteService(geocoder)


@pytest.fixture
def test_client(session_factory, catalog, cart_repository, producer, geocoder, quote_service):
    """
    FastAPI TestClient wired to the in-process stand-ins.

    Used without a ``with`` block so the lifespan (Postgres, Redis, Kafka) never runs.
    """

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_cart_repository] = lambda: cart_repository
    app.dependency_overrides[get_event_producer] = lambda: producer
    app.dependency_overrides[get_geocoder] = lambda: geocoder
    app.dependency_overrides[get_quote_service] = lambda: quote_service

    yield TestClient(app)

    app.dependency_overrides.clear()
