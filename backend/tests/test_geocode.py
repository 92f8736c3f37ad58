import json

import httpx

from rentals.services import geocode


def mock_async_client(monkeypatch, handler):
    real_client = httpx.AsyncClient

    def factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(geocode.httpx, "AsyncClient", factory)


def test_geocode_without_key_returns_none(fake_redis):
    assert geocode.geocode_address("12 Elm St, Canton, MI 48187") is None


def test_geocode_success_is_cached(fake_redis, monkeypatch):
    monkeypatch.setenv("GOOGLE_MAPS_API_KEY", "test-key")
    calls = []

    def handler(request):
        calls.append(request.url.params["address"])
        return httpx.Response(
            200,
            json={
                "results": [
                    {
                        "formatted_address": "12 Elm St, Canton, MI 48187, USA",
                        "geometry": {"location": {"lat": 42.3087, "lng": -83.4822}},
                    }
                ]
            },
        )

    mock_async_client(monkeypatch, handler)
    first = geocode.geocode_address("12 Elm St, Canton, MI 48187")
    second = geocode.geocode_address("12 elm st, canton, mi 48187 ")
    assert (first.lat, first.lng) == (42.3087, -83.4822)
    assert second.formatted_address == "12 Elm St, Canton, MI 48187, USA"
    assert len(calls) == 1
    cached = json.loads(fake_redis.get("geo:addr:12 elm st, canton, mi 48187"))
    assert cached["lat"] == 42.3087


def test_geocode_failure_returns_none(fake_redis, monkeypatch):
    monkeypatch.setenv("GOOGLE_MAPS_API_KEY", "test-key")
    mock_async_client(monkeypatch, lambda request: httpx.Response(500, json={}))
    assert geocode.geocode_address("Nowhere") is None


def test_geocode_no_results(fake_redis, monkeypatch):
    monkeypatch.setenv("GOOGLE_MAPS_API_KEY", "test-key")
    mock_async_client(monkeypatch, lambda request: httpx.Response(200, json={"results": [], "status": "ZERO_RESULTS"}))
    assert geocode.geocode_address("Nowhere") is None
    assert geocode.geocode_address("   ") is None
