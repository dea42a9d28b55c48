"""
Wire serializers shared by the data model.

RPC documents encode 64-bit integers as decimal strings, hashes and addresses
as upper-case hex, and keys and signatures as base64. Consensus-critical
hashing goes through ``canonical_json``.
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Any, Mapping

from xai_light.core.lite_exceptions import DeserializationError

U64_MAX = 2**64 - 1
I64_MIN = -(2**63)
I64_MAX = 2**63 - 1


def canonical_json(data: Any) -> str:
    """Produce deterministic JSON string for consensus-critical hashing.

    - sort_keys=True: Consistent key ordering
    - separators=(',', ':'): No whitespace variations
    - ensure_ascii=True: No unicode encoding variations
    """
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=True)


def canonical_bytes(data: Any) -> bytes:
    return canonical_json(data).encode("ascii")


def expect_mapping(value: Any, field: str) -> Mapping[str, Any]:
    """Return ``value`` if it is a JSON object, raising a named error otherwise."""
    if not isinstance(value, Mapping):
        raise DeserializationError(
            f"Field '{field}' must be an object, got {type(value).__name__}", field=field
        )
    return value


def require_field(payload: Mapping[str, Any], field: str) -> Any:
    """Return ``payload[field]``, raising a named error when absent or null."""
    if not isinstance(payload, Mapping):
        raise DeserializationError(f"Expected an object containing '{field}'", field=field)
    value = payload.get(field)
    if value is None:
        raise DeserializationError(f"Missing required field '{field}'", field=field)
    return value


def _parse_int(value: Any, field: str, low: int, high: int) -> int:
    if isinstance(value, bool):
        raise DeserializationError(f"Field '{field}' must be an integer", field=field)
    if isinstance(value, str):
        try:
            parsed = int(value, 10)
        except ValueError as exc:
            raise DeserializationError(
                f"Field '{field}' is not a decimal integer: {value!r}", field=field
            ) from exc
    elif isinstance(value, int):
        parsed = value
    else:
        raise DeserializationError(f"Field '{field}' must be an integer", field=field)
    if not low <= parsed <= high:
        raise DeserializationError(f"Field '{field}' out of range: {parsed}", field=field)
    return parsed


def parse_u64(value: Any, field: str = "value") -> int:
    return _parse_int(value, field, 0, U64_MAX)


def parse_i64(value: Any, field: str = "value") -> int:
    return _parse_int(value, field, I64_MIN, I64_MAX)


def serialize_u64(value: int) -> str:
    return str(value)


def hex_to_bytes(value: Any, field: str = "value") -> bytes:
    if value is None or value == "":
        return b""
    if not isinstance(value, str):
        raise DeserializationError(f"Field '{field}' must be a hex string", field=field)
    try:
        return bytes.fromhex(value)
    except ValueError as exc:
        raise DeserializationError(f"Field '{field}' is not valid hex", field=field) from exc


def bytes_to_hex(value: bytes) -> str:
    return value.hex().upper()


def base64_to_bytes(value: Any, field: str = "value") -> bytes:
    if not isinstance(value, str):
        raise DeserializationError(f"Field '{field}' must be a base64 string", field=field)
    try:
        return base64.b64decode(value.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError) as exc:
        raise DeserializationError(
            f"Field '{field}' is not valid base64: {exc}", field=field
        ) from exc


def bytes_to_base64(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")

