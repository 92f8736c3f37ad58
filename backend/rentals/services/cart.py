"""Server-side cart state.

The storefront keeps one cart per browser session. Carts are plain
:class:`Cart` objects persisted through a :class:`CartStorage` (key/value
get/set/delete). Redis backs production; ``MemoryCartStorage`` serves tests
and single-process development.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol
import logging
import threading

import redis

from rentals.core.config import settings
from rentals.utils import redis_cache
from rentals.utils.json_utils import dumps, loads

from .errors import CartStorageError
from .pricing import CartItem

logger = logging.getLogger(__name__)

CART_KEY_PREFIX = "cart"


class CartStorage(Protocol):
    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def delete(self, key: str) -> None:
        ...


class MemoryCartStorage:
    def __init__(self) -> None:
        self._data: Dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)


class RedisCartStorage:
    def __init__(self, client: Any = None, ttl_seconds: Optional[int] = None) -> None:
        self._client = client
        self.ttl_seconds = int(ttl_seconds or settings.CART_TTL_SECONDS)

    @property
    def client(self) -> Any:
        return self._client if self._client is not None else redis_cache.get_redis_client()

    def get(self, key: str) -> Optional[str]:
        try:
            raw = self.client.get(key)
        except redis.RedisError as exc:
            raise _unavailable("read", key, exc) from exc
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return raw

    def set(self, key: str, value: str) -> None:
        try:
            self.client.setex(key, self.ttl_seconds, value)
        except redis.RedisError as exc:
            raise _unavailable("save", key, exc) from exc

    def delete(self, key: str) -> None:
        try:
            self.client.delete(key)
        except redis.RedisError as exc:
            raise _unavailable("delete", key, exc) from exc


def _unavailable(action: str, key: str, exc: Exception) -> CartStorageError:
    logger.error("Cart %s failed for %s: %s", action, key, exc)
    return CartStorageError("Cart storage is unavailable. Please try again.", {"cart": "unavailable"})


@dataclass
class CartLine:
    unit_id: int
    unit_name: str
    wet_or_dry: str = "dry"
    unit_price_cents: int = 0
    qty: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "unit_id": self.unit_id,
            "unit_name": self.unit_name,
            "wet_or_dry": self.wet_or_dry,
            "unit_price_cents": self.unit_price_cents,
            "qty": self.qty,
        }


@dataclass
class Cart:
    lines: List[CartLine] = field(default_factory=list)

    def _find(self, unit_id: int, wet_or_dry: str) -> Optional[CartLine]:
        for line in self.lines:
            if line.unit_id == unit_id and line.wet_or_dry == wet_or_dry:
                return line
        return None

    def add(self, unit_id: int, unit_name: str, unit_price_cents: int, wet_or_dry: str = "dry", qty: int = 1) -> CartLine:
        if qty <= 0:
            raise ValueError("qty must be positive")
        if unit_price_cents < 0:
            raise ValueError("unit_price_cents must be non-negative")
        mode = "water" if str(wet_or_dry).lower() == "water" else "dry"
        line = self._find(unit_id, mode)
        if line is not None:
            line.qty += qty
            line.unit_price_cents = unit_price_cents
            return line
        line = CartLine(unit_id, unit_name, mode, unit_price_cents, qty)
        self.lines.append(line)
        return line

    def update_qty(self, unit_id: int, qty: int, wet_or_dry: str = "dry") -> None:
        line = self._find(unit_id, wet_or_dry)
        if line is None:
            raise KeyError(unit_id)
        if qty <= 0:
            self.lines.remove(line)
        else:
            line.qty = qty

    def remove(self, unit_id: int, wet_or_dry: Optional[str] = None) -> None:
        self.lines = [
            line
            for line in self.lines
            if not (line.unit_id == unit_id and (wet_or_dry is None or line.wet_or_dry == wet_or_dry))
        ]

    def clear(self) -> None:
        self.lines = []

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def total_units(self) -> int:
        return sum(line.qty for line in self.lines)

    def to_price_items(self) -> List[CartItem]:
        return [
            CartItem(
                unit_id=line.unit_id,
                unit_name=line.unit_name,
                wet_or_dry=line.wet_or_dry,
                unit_price_cents=line.unit_price_cents,
                qty=line.qty,
            )
            for line in self.lines
        ]

    def to_dict(self) -> Dict[str, Any]:
        return {"items": [line.to_dict() for line in self.lines]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Cart":
        lines = [
            CartLine(
                unit_id=int(raw["unit_id"]),
                unit_name=str(raw.get("unit_name") or ""),
                wet_or_dry="water" if str(raw.get("wet_or_dry")).lower() == "water" else "dry",
                unit_price_cents=int(raw.get("unit_price_cents") or 0),
                qty=int(raw.get("qty") or 1),
            )
            for raw in data.get("items") or []
        ]
        return cls(lines=lines)


class CartRepository:
    def __init__(self, storage: CartStorage) -> None:
        self.storage = storage

    @staticmethod
    def _key(session_id: str) -> str:
        return f"{CART_KEY_PREFIX}:{session_id}"

    def load(self, session_id: str) -> Cart:
        """Return the stored cart, or an empty one when missing or unreadable."""
        raw = self.storage.get(self._key(session_id))
        if not raw:
            return Cart()
        try:
            return Cart.from_dict(loads(raw))
        except (ValueError, KeyError, TypeError) as exc:
            logger.warning("Discarding unreadable cart %s: %s", session_id, exc)
            return Cart()

    def save(self, session_id: str, cart: Cart) -> None:
        self.storage.set(self._key(session_id), dumps(cart.to_dict()))

    def delete(self, session_id: str) -> None:
        self.storage.delete(self._key(session_id))


# Used when Redis is disabled; carts live only as long as this process
_memory_storage = MemoryCartStorage()


def get_cart_repository() -> CartRepository:
    if redis_cache.is_null_client(redis_cache.get_redis_client()):
        return CartRepository(_memory_storage)
    return CartRepository(RedisCartStorage())
