"""JSON utilities using orjson.

Used for persisted ledger records and HTTP responses.

Usage:
    from tournament_ledger.utils.json_utils import json_dumps, json_loads, ORJSONResponse

    data = json_loads('{"key": "value"}')
    json_str = json_dumps({"key": "value"})
"""

from typing import Any

import orjson
from fastapi.responses import JSONResponse


def _default_serializer(obj: Any) -> Any:
    """Objects exposing ``to_dict`` (ledger records, errors)."""
    if hasattr(obj, "to_dict"):
        return obj.to_dict()
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def json_dumps(data: Any, *, pretty: bool = False) -> str:
    """Serialize data to JSON string using orjson.

    Args:
        data: Data to serialize
        pretty: If True, format with indentation

    Returns:
        JSON string
    """
    options = orjson.OPT_UTC_Z
    if pretty:
        options |= orjson.OPT_INDENT_2

    return orjson.dumps(data, default=_default_serializer, option=options).decode("utf-8")


def json_dumps_bytes(data: Any) -> bytes:
    """Serialize data to JSON bytes using orjson."""
    return orjson.dumps(data, default=_default_serializer, option=orjson.OPT_UTC_Z)


def json_loads(data: str | bytes) -> Any:
    """Deserialize JSON string/bytes to Python object."""
    return orjson.loads(data)


class ORJSONResponse(JSONResponse):
    """FastAPI response class using orjson for serialization."""

    media_type = "application/json"

    def render(self, content: Any) -> bytes:
        """Render content to JSON bytes."""
        return json_dumps_bytes(content)
