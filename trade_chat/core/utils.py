"""Core utility functions."""
import json
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any


def to_decimal(value: Any) -> Decimal:
    """Coerce a stored numeric (str/int/float/None) to Decimal."""
    if value is None or value == "":
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def json_dumps(obj: Any) -> str:
    """Serialize object to JSON string, handling special types.

    Handles:
    - datetime objects (ISO format)
    - Enum objects (value)
    - Decimal objects (string, to keep cents exact)
    - set/frozenset (list)
    - Pydantic models (.model_dump())
    """
    def default_handler(o):
        if isinstance(o, datetime):
            return o.isoformat()
        if isinstance(o, Enum):
            return o.value
        if isinstance(o, Decimal):
            return str(o)
        if isinstance(o, (set, frozenset)):
            return list(o)
        if hasattr(o, "model_dump"):
            return o.model_dump(mode="json")
        return str(o)

    return json.dumps(obj, default=default_handler)
