import pytest
import redis

from rentals.services.cart import Cart, CartRepository, MemoryCartStorage, RedisCartStorage
from rentals.services.errors import CartStorageError


def test_adding_same_unit_merges_lines():
    cart = Cart()
    cart.add(1, "Castle", 15000)
    cart.add(1, "Castle", 15000, qty=2)
    cart.add(1, "Castle", 20000, wet_or_dry="WATER")
    assert len(cart.lines) == 2
    assert cart.total_units == 4
    assert [line.wet_or_dry for line in cart.lines] == ["dry", "water"]


def test_update_and_remove():
    cart = Cart()
    cart.add(1, "Castle", 15000)
    cart.add(2, "Combo", 22500)
    cart.update_qty(1, 3)
    assert cart.lines[0].qty == 3
    cart.update_qty(2, 0)
    assert [line.unit_id for line in cart.lines] == [1]
    with pytest.raises(KeyError):
        cart.update_qty(5, 1)
    cart.remove(1)
    assert cart.is_empty


def test_invalid_lines_rejected():
    cart = Cart()
    with pytest.raises(ValueError):
        cart.add(1, "Castle", 15000, qty=0)
    with pytest.raises(ValueError):
        cart.add(1, "Castle", -1)


def test_price_items_feed_the_pricing_engine():
    cart = Cart()
    cart.add(1, "Castle", 20000, wet_or_dry="water", qty=2)
    [item] = cart.to_price_items()
    assert item.mode == "water"
    assert item.line_total_cents == 40000


def test_repository_round_trip_in_memory():
    repo = CartRepository(MemoryCartStorage())
    cart = Cart()
    cart.add(2, "Combo", 22500, qty=2)
    repo.save("abc", cart)
    loaded = repo.load("abc")
    assert loaded == cart
    repo.delete("abc")
    assert repo.load("abc").is_empty


def test_repository_discards_corrupt_data():
    storage = MemoryCartStorage()
    storage.set("cart:abc", "not json")
    assert CartRepository(storage).load("abc").is_empty


def test_redis_storage_sets_ttl(fake_redis):
    repo = CartRepository(RedisCartStorage(client=fake_redis, ttl_seconds=60))
    cart = Cart()
    cart.add(1, "Castle", 15000)
    repo.save("s1", cart)
    assert 0 < fake_redis.ttl("cart:s1") <= 60
    assert repo.load("s1").total_units == 1


def test_disabled_redis_keeps_carts_in_memory(monkeypatch):
    from rentals.services import cart as cart_module
    from rentals.utils import redis_cache

    monkeypatch.setattr(redis_cache, "get_redis_client", lambda: redis_cache._NullRedis())
    monkeypatch.setattr(cart_module, "_memory_storage", MemoryCartStorage())
    cart = Cart()
    cart.add(1, "Castle", 15000)
    cart_module.get_cart_repository().save("s1", cart)
    assert cart_module.get_cart_repository().load("s1").total_units == 1


class _DownRedis:
    def get(self, *args):
        raise redis.ConnectionError("connection refused")

    setex = delete = get


def test_redis_outage_raises_storage_error():
    repo = CartRepository(RedisCartStorage(client=_DownRedis()))
    with pytest.raises(CartStorageError) as exc:
        repo.load("s1")
    assert exc.value.field_errors == {"cart": "unavailable"}
    with pytest.raises(CartStorageError):
        repo.save("s1", Cart())
