"""Block identifiers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping

from xai_light.core.serializers import (
    bytes_to_hex,
    expect_mapping,
    hex_to_bytes,
    parse_u64,
    serialize_u64,
)


@dataclass(frozen=True)
class PartSetHeader:
    total: int = 0
    hash: bytes = b""

    def to_dict(self) -> Dict[str, Any]:
        return {"total": serialize_u64(self.total), "hash": bytes_to_hex(self.hash)}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | None) -> "PartSetHeader":
        if payload is None:
            return cls()
        payload = expect_mapping(payload, "parts")
        return cls(
            total=parse_u64(payload.get("total", 0), "parts.total"),
            hash=hex_to_bytes(payload.get("hash"), "parts.hash"),
        )


@dataclass(frozen=True)
class BlockId:
    """Hash of a header plus the part-set header of the block it heads."""

    hash: bytes
    parts: PartSetHeader = PartSetHeader()

    def is_zero(self) -> bool:
        return not self.hash and not self.parts.hash and self.parts.total == 0

    def to_dict(self) -> Dict[str, Any]:
        return {"hash": bytes_to_hex(self.hash), "parts": self.parts.to_dict()}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any] | None) -> "BlockId":
        if payload is None:
            return cls(b"")
        payload = expect_mapping(payload, "block_id")
        return cls(
            hash=hex_to_bytes(payload.get("hash"), "block_id.hash"),
            parts=PartSetHeader.from_dict(payload.get("parts")),
        )

    def __str__(self) -> str:
        return bytes_to_hex(self.hash)
