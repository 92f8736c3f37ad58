from fastapi.testclient import TestClient

from rentals.core.config import settings
from rentals.main import app
from rentals.utils import redis_cache


class DummyRedis:
    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


def test_close_redis_client(monkeypatch):
    dummy = DummyRedis()
    monkeypatch.setattr(redis_cache, "_redis_client", dummy)
    redis_cache.close_redis_client()
    assert dummy.closed
    assert redis_cache._redis_client is None


def test_shutdown_event_closes_client(monkeypatch):
    dummy = DummyRedis()
    monkeypatch.setattr(redis_cache, "_redis_client", dummy)

    with TestClient(app):
        pass

    assert dummy.closed
    assert redis_cache._redis_client is None


def test_disabled_url_gives_null_client(monkeypatch):
    monkeypatch.setattr(redis_cache, "_redis_client", None)
    monkeypatch.setattr(settings, "REDIS_URL", "disabled")
    client = redis_cache.get_redis_client()
    assert isinstance(client, redis_cache._NullRedis)
    assert client.get("anything") is None
