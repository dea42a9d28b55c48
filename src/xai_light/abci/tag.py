"""Key/value tags attached to transaction and block results."""

from __future__ import annotations

import functools
from dataclasses import dataclass
from typing import Any, Dict, Mapping

from xai_light.core.lite_exceptions import DeserializationError, TagError
from xai_light.core.serializers import require_field


@functools.total_ordering
class Key:
    """Tag key: a non-empty string, ordered lexicographically for use as a mapping key."""

    __slots__ = ("_value",)

    def __init__(self, value: str) -> None:
        if not isinstance(value, str):
            raise TagError(f"Tag key must be a string, got {type(value).__name__}")
        if not value:
            raise TagError("Tag key cannot be empty")
        self._value = value

    @classmethod
    def from_str(cls, value: str) -> "Key":
        return cls(value)

    def as_str(self) -> str:
        return self._value

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"Key({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Key):
            return NotImplemented
        return self._value == other._value

    def __lt__(self, other: "Key") -> bool:
        if not isinstance(other, Key):
            return NotImplemented
        return self._value < other._value

    def __hash__(self) -> int:
        return hash(self._value)


class Value:
    """Tag value: any string."""

    __slots__ = ("_value",)

    def __init__(self, value: str) -> None:
        if not isinstance(value, str):
            raise TagError(f"Tag value must be a string, got {type(value).__name__}")
        self._value = value

    @classmethod
    def from_str(cls, value: str) -> "Value":
        return cls(value)

    def as_str(self) -> str:
        return self._value

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"Value({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Value):
            return NotImplemented
        return self._value == other._value

    def __hash__(self) -> int:
        return hash(self._value)


@dataclass(frozen=True)
class Tag:
    key: Key
    value: Value

    def to_dict(self) -> Dict[str, str]:
        return {"key": str(self.key), "value": str(self.value)}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Tag":
        try:
            key = require_field(payload, "key")
        except DeserializationError as exc:
            raise TagError("Tag is missing its key", details={"field": "key"}) from exc
        return cls(Key.from_str(key), Value.from_str(payload.get("value", "")))
