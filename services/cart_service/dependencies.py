"""FastAPI dependency providers. Instances are created in the lifespan and kept on app.state."""

from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from services.cart_service.cart_repository import CartRepository
from services.cart_service.catalog_repository import CatalogRepository
from services.cart_service.geocoding import NominatimGeocoder
from services.cart_service.shipping_quote import ShippingQuoteService
from shared.database import get_db
from shared.kafka_client import BaseKafkaProducer


def get_catalog(db: Session = Depends(get_db)) -> CatalogRepository:
    return CatalogRepository(db)


def get_cart_repository(request: Request) -> CartRepository:
    return request.app.state.cart_repository


def get_event_producer(request: Request) -> Optional[BaseKafkaProducer]:
    return getattr(request.app.state, "producer", None)


def get_geocoder(request: Request) -> NominatimGeocoder:
    return request.app.state.geocoder


def get_quote_service(request: Request) -> ShippingQuoteService:
    return request.app.state.quote_service
