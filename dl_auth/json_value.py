"""
DL Auth SDK Dynamic JSON Values

A small tagged union for free-form JSON: user metadata and server error
payloads whose shape is not known ahead of time.

Exactly six shapes are representable: string, integer, float, boolean,
array and object. Anything else (null, bytes, dates, arbitrary objects)
is rejected with UnsupportedTypeError rather than coerced.
"""

import json
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Tuple, Union


class UnsupportedTypeError(ValueError):
    """Raised when a value has no JSONValue representation."""

    def __init__(self, message: str = "Unsupported type") -> None:
        super().__init__(message)
        self.message = message


class JSONValue(ABC):
    """Base class for the six JSON value cases."""

    __slots__ = ()

    @abstractmethod
    def to_python(self) -> Any:
        """Unwrap into plain Python values."""

    @classmethod
    def from_python(cls, obj: Any) -> "JSONValue":
        """
        Wrap a plain Python value.

        Raises:
            UnsupportedTypeError: For None, bytes, datetimes, sets and any
                other object outside the six JSON shapes.
        """
        if isinstance(obj, JSONValue):
            return obj
        if isinstance(obj, str):
            return JSONString(obj)
        # bool is an int subclass, check it first
        if isinstance(obj, bool):
            return JSONBool(obj)
        if isinstance(obj, int):
            return JSONInt(obj)
        if isinstance(obj, float):
            return JSONFloat(obj)
        if isinstance(obj, (list, tuple)):
            return JSONArray(tuple(cls.from_python(item) for item in obj))
        if isinstance(obj, Mapping):
            items: Dict[str, JSONValue] = {}
            for key, item in obj.items():
                if not isinstance(key, str):
                    raise UnsupportedTypeError(
                        f"Unsupported object key type: {type(key).__name__}"
                    )
                items[key] = cls.from_python(item)
            return JSONObject(items)
        raise UnsupportedTypeError(f"Unsupported type: {type(obj).__name__}")


@dataclass(frozen=True)
class JSONString(JSONValue):
    value: str

    def to_python(self) -> str:
        return self.value


@dataclass(frozen=True)
class JSONInt(JSONValue):
    value: int

    def to_python(self) -> int:
        return self.value


@dataclass(frozen=True)
class JSONFloat(JSONValue):
    value: float

    def to_python(self) -> float:
        return self.value


@dataclass(frozen=True)
class JSONBool(JSONValue):
    value: bool

    def to_python(self) -> bool:
        return self.value


@dataclass(frozen=True)
class JSONArray(JSONValue):
    value: Tuple[JSONValue, ...]

    def to_python(self) -> list:
        return [item.to_python() for item in self.value]

    def __len__(self) -> int:
        return len(self.value)

    def __getitem__(self, index: int) -> JSONValue:
        return self.value[index]


@dataclass(frozen=True)
class JSONObject(JSONValue):
    value: Dict[str, JSONValue]

    def to_python(self) -> Dict[str, Any]:
        return {key: item.to_python() for key, item in self.value.items()}

    def get(self, key: str) -> Union[JSONValue, None]:
        return self.value.get(key)

    def __getitem__(self, key: str) -> JSONValue:
        return self.value[key]

    def __contains__(self, key: object) -> bool:
        return key in self.value

    def __len__(self) -> int:
        return len(self.value)

    # dict fields are unhashable; equality is all callers need
    __hash__ = None  # type: ignore[assignment]


def _from_parsed(obj: Any) -> JSONValue:
    """Convert a freshly parsed JSON tree, in the fixed case order."""
    if isinstance(obj, str):
        return JSONString(obj)
    if isinstance(obj, bool):
        return JSONBool(obj)
    if isinstance(obj, int):
        return JSONInt(obj)
    if isinstance(obj, float):
        return JSONFloat(obj)
    if isinstance(obj, list):
        return JSONArray(tuple(_from_parsed(item) for item in obj))
    if isinstance(obj, dict):
        return JSONObject({key: _from_parsed(item) for key, item in obj.items()})
    raise UnsupportedTypeError(f"Unsupported type: {type(obj).__name__}")


def decode_json_value(data: Union[bytes, str]) -> JSONValue:
    """
    Decode JSON text into a JSONValue.

    Raises:
        UnsupportedTypeError: If the text is not valid JSON or contains a
            shape outside the six supported cases (including null).
    """
    try:
        parsed = json.loads(data)
    except (ValueError, TypeError) as e:
        raise UnsupportedTypeError(f"Unsupported type: {e}") from e
    return _from_parsed(parsed)


def _to_plain(value: Any) -> Any:
    if isinstance(value, JSONString):
        return value.value
    if isinstance(value, JSONBool):
        return value.value
    if isinstance(value, JSONInt):
        return value.value
    if isinstance(value, JSONFloat):
        if not math.isfinite(value.value):
            raise UnsupportedTypeError("Unsupported type: non-finite float")
        return value.value
    if isinstance(value, JSONArray):
        return [_to_plain(item) for item in value.value]
    if isinstance(value, JSONObject):
        return {key: _to_plain(item) for key, item in value.value.items()}
    raise UnsupportedTypeError(f"Unsupported type: {type(value).__name__}")


def encode_json_value(value: JSONValue) -> bytes:
    """
    Encode a JSONValue as UTF-8 JSON.

    Raises:
        UnsupportedTypeError: If value (or anything nested in it) is not one
            of the six JSONValue cases.
    """
    return json.dumps(_to_plain(value)).encode("utf-8")
