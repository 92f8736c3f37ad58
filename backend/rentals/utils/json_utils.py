from typing import Any

import orjson
from fastapi.encoders import jsonable_encoder


def dumps_bytes(obj: Any) -> bytes:
    # Allow non-string dict keys (unit ids) in stored payloads
    return orjson.dumps(jsonable_encoder(obj), option=orjson.OPT_NON_STR_KEYS)


def dumps(obj: Any) -> str:
    """Serialize obj to a compact JSON string (UTF-8), with datetime support."""
    return dumps_bytes(obj).decode("utf-8")


def loads(raw: Any) -> Any:
    return orjson.loads(raw)
