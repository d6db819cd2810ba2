import logging
from typing import Optional, Protocol

from pydantic import BaseModel

from shared.shipping import (
    DEFAULT_FEE_SCHEDULE,
    Coordinates,
    FeeSchedule,
    calculate_distance,
    calculate_shipping_fee,
    describe_shipping,
)

logger = logging.getLogger(__name__)


class Geocoder(Protocol):
    async def geocode_city(self, city: str) -> Optional[Coordinates]: ...


class ShippingQuote(BaseModel):
    """Transient distance and fee for one seller/buyer pair."""

    distance_km: float
    fee: int
    description: str


class ShippingQuoteService:
    """Combines geocoding with the fee table into a quote, or None when either city is unknown."""

    def __init__(self, geocoder: Geocoder, schedule: FeeSchedule = DEFAULT_FEE_SCHEDULE):
        self.geocoder = geocoder
        self.schedule = schedule

    async def get_shipping_quote(
        self,
        seller_city: str,
        buyer_city: str,
        seller_coords: Optional[Coordinates] = None,
    ) -> Optional[ShippingQuote]:
        logger.info(f"Calculating shipping from {seller_city!r} to {buyer_city!r}")

        if seller_coords is not None:
            logger.info(
                f"Using saved seller coordinates: ({seller_coords.latitude}, {seller_coords.longitude})"
            )
        else:
            seller_coords = await self.geocoder.geocode_city(seller_city)
            if seller_coords is None:
                logger.error(f"Could not find coordinates for seller city: {seller_city!r}")
                return None

        # Buyer city is typed per request and never persisted
        buyer_coords = await self.geocoder.geocode_city(buyer_city)
        if buyer_coords is None:
            logger.error(f"Could not find coordinates for buyer city: {buyer_city!r}")
            return None

        distance = calculate_distance(seller_coords, buyer_coords)
        fee = calculate_shipping_fee(distance, self.schedule)
        logger.info(f"Distance: {distance} km | Shipping Fee: {fee} KES")

        return ShippingQuote(
            distance_km=distance,
            fee=fee,
            description=describe_shipping(distance, self.schedule),
        )
