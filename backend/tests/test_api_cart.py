def test_cart_lifecycle(client):
    assert client.get("/api/v1/cart/s1").json() == {"session_id": "s1", "items": [], "total_units": 0, "subtotal_cents": 0}

    res = client.put(
        "/api/v1/cart/s1",
        json={"items": [{"unit_id": 1, "qty": 1, "wet_or_dry": "water"}, {"unit_id": 2, "qty": 2}]},
    )
    assert res.status_code == 200
    data = res.json()
    assert data["total_units"] == 3
    assert data["subtotal_cents"] == 20000 + 2 * 22500
    assert [line["unit_name"] for line in data["items"]] == ["Castle", "Combo"]

    assert client.get("/api/v1/cart/s1").json() == data
    assert client.get("/api/v1/cart/other").json()["items"] == []

    assert client.delete("/api/v1/cart/s1").status_code == 204
    assert client.get("/api/v1/cart/s1").json()["total_units"] == 0


def test_cart_rejects_unknown_units(client):
    res = client.put("/api/v1/cart/s1", json={"items": [{"unit_id": 42}]})
    assert res.status_code == 422
    assert res.json()["detail"]["field_errors"] == {"items.0.unit_id": "not_found"}


def test_cart_survives_between_requests_without_redis(client, monkeypatch):
    from rentals.api.dependencies import get_carts
    from rentals.main import app
    from rentals.services import cart as cart_module
    from rentals.services.cart import MemoryCartStorage
    from rentals.utils import redis_cache

    app.dependency_overrides.pop(get_carts)
    monkeypatch.setattr(redis_cache, "get_redis_client", lambda: redis_cache._NullRedis())
    monkeypatch.setattr(cart_module, "_memory_storage", MemoryCartStorage())

    assert client.put("/api/v1/cart/s1", json={"items": [{"unit_id": 1}]}).status_code == 200
    assert client.get("/api/v1/cart/s1").json()["total_units"] == 1


def test_cart_store_outage_is_service_unavailable(client, monkeypatch):
    import redis

    from rentals.api.dependencies import get_carts
    from rentals.main import app
    from rentals.utils import redis_cache

    class DownRedis:
        def get(self, *args):
            raise redis.ConnectionError("connection refused")

        setex = delete = get

    app.dependency_overrides.pop(get_carts)
    monkeypatch.setattr(redis_cache, "get_redis_client", lambda: DownRedis())

    res = client.get("/api/v1/cart/s1")
    assert res.status_code == 503
    assert res.json()["detail"]["field_errors"] == {"cart": "unavailable"}
