"""Unit tests for the Nominatim geocoder (httpx.MockTransport, fakeredis cache)."""

import httpx
import pytest

from services.cart_service.geocoding import GeocodeCache, NominatimGeocoder, normalize_city
from shared.shipping import Coordinates

NAIROBI_RESULT = [{"lat": "-1.2863890", "lon": "36.8172230", "display_name": "Nairobi, Kenya"}]


def make_geocoder(handler, **kwargs) -> NominatimGeocoder:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return NominatimGeocoder(base_url="https://geo.test/search", client=client, **kwargs)


class TestNormalizeCity:
    def test_collapses_whitespace_and_case(self):
        assert normalize_city("  New   York ") == "new york"
        assert normalize_city("NAIROBI") == normalize_city("nairobi")


@pytest.mark.asyncio
class TestGeocodeCity:
    async def test_success(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json=NAIROBI_RESULT)

        geocoder = make_geocoder(handler)
        coords = await geocoder.geocode_city("Nairobi")

        assert coords == Coordinates(latitude=-1.286389, longitude=36.817223)
        request = requests[0]
        assert request.url.params["q"] == "Nairobi"
        assert request.url.params["format"] == "json"
        assert request.url.params["limit"] == "1"
        assert request.headers["User-Agent"] == "FurnitureApp/1.0"

    async def test_not_found(self):
        geocoder = make_geocoder(lambda request: httpx.Response(200, json=[]))
        assert await geocoder.geocode_city("Atlantis") is None

    @pytest.mark.parametrize(
        "body",
        [
            b"<html>rate limited</html>",
            b'{"error": "bad"}',
            b'["nope"]',
            b'[{"lat": "north", "lon": "36.8"}]',
            b'[{"display_name": "no coordinates"}]',
        ],
    )
    async def test_malformed_payload(self, body):
        geocoder = make_geocoder(lambda request: httpx.Response(200, content=body))
        assert await geocoder.geocode_city("Nairobi") is None

    async def test_server_error(self):
        geocoder = make_geocoder(lambda request: httpx.Response(500))
        assert await geocoder.geocode_city("Nairobi") is None

    async def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        geocoder = make_geocoder(handler)
        assert await geocoder.geocode_city("Nairobi") is None

    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        geocoder = make_geocoder(handler)
        assert await geocoder.geocode_city("Nairobi") is None

    async def test_blank_city_makes_no_request(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=NAIROBI_RESULT)

        geocoder = make_geocoder(handler)
        assert await geocoder.geocode_city("   ") is None
        assert calls == []

    async def test_retries_transport_failures(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503)
            return httpx.Response(200, json=NAIROBI_RESULT)

        geocoder = make_geocoder(handler, max_attempts=3)
        assert await geocoder.geocode_city("Nairobi") is not None
        assert len(calls) == 3

    async def test_no_retry_by_default(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503)

        geocoder = make_geocoder(handler)
        assert await geocoder.geocode_city("Nairobi") is None
        assert len(calls) == 1

    async def test_not_found_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=[])

        geocoder = make_geocoder(handler, max_attempts=3)
        assert await geocoder.geocode_city("Atlantis") is None
        assert len(calls) == 1


@pytest.mark.asyncio
class TestGeocodeCache:
    async def test_hit_skips_request(self, redis_client):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=NAIROBI_RESULT)

        geocoder = make_geocoder(handler, cache=GeocodeCache(redis_client, ttl=60))

        first = await geocoder.geocode_city("Nairobi")
        second = await geocoder.geocode_city("  nairobi ")

        assert first == second
        assert len(calls) == 1
        assert redis_client.ttl("geocode:nairobi") > 0

    async def test_misses_are_not_cached(self, redis_client):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=[])

        geocoder = make_geocoder(handler, cache=GeocodeCache(redis_client))

        await geocoder.geocode_city("Atlantis")
        await geocoder.geocode_city("Atlantis")

        assert len(calls) == 2
        assert redis_client.get("geocode:atlantis") is None

    @pytest.mark.parametrize("stored", ["not-json", "[1, 2]", '{"lat": 1}'])
    async def test_unreadable_entry_falls_back_to_lookup(self, redis_client, stored):
        redis_client.set("geocode:nairobi", stored)
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(200, json=NAIROBI_RESULT)

        geocoder = make_geocoder(handler, cache=GeocodeCache(redis_client, ttl=60))

        coords = await geocoder.geocode_city("Nairobi")

        assert coords == Coordinates(latitude=-1.286389, longitude=36.817223)
        assert len(calls) == 1
        assert Coordinates.model_validate_json(redis_client.get("geocode:nairobi")) == coords


class TestGeocodeCacheEntries:
    def test_unreadable_entry_is_deleted(self, redis_client):
        redis_client.set("geocode:nairobi", "not-json")

        assert GeocodeCache(redis_client).get("Nairobi") is None
        assert redis_client.get("geocode:nairobi") is None
