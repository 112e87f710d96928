"""Tests for the Google Maps geocoding client (HTTP mocked with httpx.MockTransport)."""

import httpx
import pytest

from errors import GeocodeError
from geocoder import GoogleMapsGeocoder

GEOCODE_OK = {
    "status": "OK",
    "results": [{
        "formatted_address": "1 Market St, San Francisco, CA",
        "geometry": {"location": {"lat": 37.7936, "lng": -122.3958}},
        "types": ["supermarket", "store"],
    }],
}


def geocoder_with(handler, api_key="test-key"):
    return GoogleMapsGeocoder(
        api_key=api_key,
        base_url="https://maps.example.test/maps/api",
        timeout=5,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_geocode_returns_lon_lat():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=GEOCODE_OK)

    result = await geocoder_with(handler).geocode("a grocery store")

    assert result.coordinates == (-122.3958, 37.7936)
    assert result.address == "1 Market St, San Francisco, CA"
    assert result.place_type == "supermarket"
    assert seen[0].url.path == "/maps/api/geocode/json"
    assert seen[0].url.params["address"] == "a grocery store"
    assert seen[0].url.params["key"] == "test-key"


@pytest.mark.asyncio
async def test_geocode_zero_results_is_none():
    result = await geocoder_with(
        lambda request: httpx.Response(200, json={"status": "ZERO_RESULTS", "results": []})
    ).geocode("nowhere at all")
    assert result is None


@pytest.mark.asyncio
async def test_geocode_missing_types_is_unknown():
    body = {"status": "OK", "results": [{
        "formatted_address": "Somewhere",
        "geometry": {"location": {"lat": 1.0, "lng": 2.0}},
    }]}
    result = await geocoder_with(lambda request: httpx.Response(200, json=body)).geocode("x")
    assert result.place_type == "unknown"


@pytest.mark.asyncio
@pytest.mark.parametrize("response", [
    httpx.Response(200, json={"status": "OVER_QUERY_LIMIT", "results": []}),
    httpx.Response(200, json={"status": "REQUEST_DENIED", "error_message": "bad key"}),
    httpx.Response(500, text="boom"),
    httpx.Response(200, text="not json"),
    httpx.Response(200, json={"status": "OK", "results": [{"geometry": {}}]}),
])
async def test_geocode_failures_raise(response):
    with pytest.raises(GeocodeError):
        await geocoder_with(lambda request: response).geocode("office")


@pytest.mark.asyncio
async def test_geocode_network_error_raises():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(GeocodeError):
        await geocoder_with(handler).geocode("office")


@pytest.mark.asyncio
async def test_missing_api_key_raises_without_request():
    def handler(request):
        raise AssertionError("no request expected")

    with pytest.raises(GeocodeError):
        await geocoder_with(handler, api_key="").geocode("office")


@pytest.mark.asyncio
async def test_search_places():
    body = {"status": "OK", "candidates": [{
        "name": "Whole Foods Market",
        "formatted_address": "399 4th St",
        "geometry": {"location": {"lat": 37.78, "lng": -122.40}},
        "place_id": "abc",
        "types": ["supermarket"],
    }]}
    places = await geocoder_with(lambda request: httpx.Response(200, json=body)).search_places("whole foods")

    assert len(places) == 1
    assert places[0].name == "Whole Foods Market"
    assert places[0].coordinates == (-122.40, 37.78)
    assert places[0].place_id == "abc"


@pytest.mark.asyncio
async def test_find_nearby_places_sends_location_and_radius():
    seen = []
    body = {"status": "OK", "results": [{
        "name": "Corner Pharmacy",
        "vicinity": "12 Main St",
        "geometry": {"location": {"lat": 1.5, "lng": 2.5}},
        "place_id": "p1",
        "types": ["pharmacy"],
    }]}

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=body)

    places = await geocoder_with(handler).find_nearby_places("pharmacy", 1.0, 2.0, radius=1000)

    assert places[0].address == "12 Main St"
    assert places[0].coordinates == (2.5, 1.5)
    assert seen[0].url.params["location"] == "1.0,2.0"
    assert seen[0].url.params["radius"] == "1000"
    assert seen[0].url.params["type"] == "pharmacy"
