"""
JSON-safe rendering of values that JavaScript clients cannot hold exactly.

Integers outside the IEEE-754 safe range become strings, datetimes become
ISO-8601 strings and Decimals become their exact string form. Containers are
walked recursively. Strings pass through unchanged, so applying the function
twice gives the same result as applying it once.
"""

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

# Largest integer a JavaScript number represents exactly (2**53 - 1)
MAX_SAFE_INTEGER = 9007199254740991


def serialize_bigint(obj: Any) -> Any:
    if isinstance(obj, bool):
        return obj
    if isinstance(obj, int):
        return str(obj) if abs(obj) > MAX_SAFE_INTEGER else obj
    if isinstance(obj, (datetime, date, time)):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, dict):
        return {key: serialize_bigint(value) for key, value in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [serialize_bigint(value) for value in obj]
    return obj
