"""Unit tests for the shipping quote service."""

import pytest

from services.cart_service.shipping_quote import ShippingQuoteService
from shared.shipping import Coordinates, FeeSchedule, FeeTier


@pytest.mark.asyncio
class TestGetShippingQuote:
    async def test_quote_between_cities(self, quote_service):
        quote = await quote_service.get_shipping_quote("Nairobi", "Kisumu")

        assert quote is not None
        assert 255 <= quote.distance_km <= 270
        assert quote.fee == 2500
        assert quote.description.endswith("(Extra Long) - 2500 KES")

    async def test_regional_plus_band(self, quote_service):
        quote = await quote_service.get_shipping_quote("Nairobi", "Thika")
        assert 25 < quote.distance_km <= 50
        assert quote.fee == 1200

    async def test_same_city_is_local(self, quote_service):
        quote = await quote_service.get_shipping_quote("Nairobi", "nairobi")
        assert quote.distance_km == 0
        assert quote.fee == 500

    async def test_seller_hint_skips_seller_geocoding(self, quote_service, geocoder):
        hint = Coordinates(latitude=-1.2676, longitude=36.8108)

        quote = await quote_service.get_shipping_quote("Somewhere Unknown", "Nairobi", seller_coords=hint)

        assert geocoder.calls == ["Nairobi"]
        assert quote.fee == 500
        assert quote.distance_km < 10

    async def test_unknown_buyer_city(self, quote_service):
        assert await quote_service.get_shipping_quote("Nairobi", "Atlantis") is None

    async def test_unknown_seller_city_stops_before_buyer_lookup(self, quote_service, geocoder):
        assert await quote_service.get_shipping_quote("Atlantis", "Nairobi") is None
        assert geocoder.calls == ["Atlantis"]

    async def test_custom_schedule(self, geocoder):
        service = ShippingQuoteService(geocoder, FeeSchedule([FeeTier(fee=999)]))
        quote = await service.get_shipping_quote("Nairobi", "Mombasa")
        assert quote.fee == 999
