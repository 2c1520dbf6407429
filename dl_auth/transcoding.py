"""
DL Auth SDK Request/Response Transcoding

Converts between the SDK's snake_case field names and the wire naming
convention, and between datetime objects and ISO-8601 strings.
"""

import json
import re
from dataclasses import fields, is_dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Callable, Mapping, Union

from .errors import DecodingError, EncodingError
from .json_value import JSONObject, JSONValue

# Keys whose values are free-form user data and keep their own key names
OPAQUE_KEYS = frozenset({"metadata"})

_FIRST_CAP = re.compile(r"(.)([A-Z][a-z]+)")
_ALL_CAP = re.compile(r"([a-z0-9])([A-Z])")


class KeyCase(str, Enum):
    """Field naming convention used on the wire."""
    SNAKE = "snake_case"
    CAMEL = "camelCase"


def to_snake_case(name: str) -> str:
    """accessToken -> access_token"""
    partial = _FIRST_CAP.sub(r"\1_\2", name)
    return _ALL_CAP.sub(r"\1_\2", partial).lower()


def to_camel_case(name: str) -> str:
    """access_token -> accessToken"""
    stripped = name.lstrip("_")
    leading = name[: len(name) - len(stripped)]
    head, *rest = stripped.split("_")
    return leading + head + "".join(part[:1].upper() + part[1:] for part in rest if part)


def key_converter(case: KeyCase) -> Callable[[str], str]:
    return to_camel_case if case == KeyCase.CAMEL else to_snake_case


def format_datetime(value: datetime) -> str:
    """Format as ISO-8601 in UTC with a trailing Z. Naive values are UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def parse_datetime(value: Any) -> datetime:
    """
    Parse an ISO-8601 timestamp.

    Raises:
        TypeError: If value is not a string.
        ValueError: If the string is not ISO-8601.
    """
    if not isinstance(value, str):
        raise TypeError(f"Expected an ISO-8601 string, got {type(value).__name__}")
    text = value.strip()
    if text[-1:] in ("Z", "z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def convert_keys(obj: Any, convert: Callable[[str], str]) -> Any:
    """Recursively rename mapping keys, leaving opaque values untouched."""
    if isinstance(obj, Mapping):
        result = {}
        for key, value in obj.items():
            new_key = convert(key) if isinstance(key, str) else key
            if new_key in OPAQUE_KEYS or key in OPAQUE_KEYS:
                result[new_key] = value
            else:
                result[new_key] = convert_keys(value, convert)
        return result
    if isinstance(obj, list):
        return [convert_keys(item, convert) for item in obj]
    return obj


def _to_wire(obj: Any, convert: Callable[[str], str]) -> Any:
    # str-based enums are strs too, unwrap them first
    if isinstance(obj, Enum):
        return obj.value
    if obj is None or isinstance(obj, (str, bool, int, float)):
        return obj
    if isinstance(obj, JSONValue):
        return obj.to_python()
    if isinstance(obj, datetime):
        return format_datetime(obj)
    if isinstance(obj, date):
        return obj.isoformat()
    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return _to_wire(to_dict(), convert)
    if is_dataclass(obj) and not isinstance(obj, type):
        present = {
            f.name: getattr(obj, f.name)
            for f in fields(obj)
            if getattr(obj, f.name) is not None
        }
        return _to_wire(present, convert)
    if isinstance(obj, Mapping):
        result = {}
        for key, value in obj.items():
            if not isinstance(key, str):
                raise TypeError(f"Object keys must be strings, got {type(key).__name__}")
            if key in OPAQUE_KEYS and value is not None:
                wrapped = JSONValue.from_python(value)
                if not isinstance(wrapped, JSONObject):
                    raise TypeError(f"'{key}' must be an object")
                result[convert(key)] = wrapped.to_python()
            else:
                result[convert(key)] = _to_wire(value, convert)
        return result
    if isinstance(obj, (list, tuple)):
        return [_to_wire(item, convert) for item in obj]
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def encode_body(body: Any, wire_case: KeyCase = KeyCase.SNAKE) -> bytes:
    """
    Serialize a request body to JSON bytes in the wire convention.

    Raises:
        EncodingError: Wrapping the underlying TypeError/ValueError.
    """
    try:
        tree = _to_wire(body, key_converter(wire_case))
        return json.dumps(tree, allow_nan=False).encode("utf-8")
    except (TypeError, ValueError) as e:
        raise EncodingError(e) from e


def decode_body(data: Union[bytes, str]) -> Any:
    """
    Parse a JSON response body and convert its keys to snake_case.

    Raises:
        DecodingError: If the body is not valid JSON.
    """
    try:
        parsed = json.loads(data)
    except (TypeError, ValueError) as e:
        raise DecodingError(e) from e
    return convert_keys(parsed, to_snake_case)
