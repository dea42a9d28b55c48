"""
Votes and commit signatures.

A ``CommitSig`` refers to its validator only by address; it is resolved
against a ``ValidatorSet`` at verification time. The bytes a validator signs
are the canonical JSON of the vote together with the chain id, so a signature
cannot be replayed on another chain, height, round or block.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, Dict, Mapping, Optional

from xai_light.blockchain.block_id import BlockId
from xai_light.core.crypto_utils import ADDRESS_LENGTH
from xai_light.core.lite_exceptions import DeserializationError
from xai_light.core.serializers import (
    base64_to_bytes,
    bytes_to_base64,
    bytes_to_hex,
    canonical_bytes,
    expect_mapping,
    hex_to_bytes,
    parse_i64,
    parse_u64,
    require_field,
    serialize_u64,
)
from xai_light.core.timestamp import Time

MAX_SIGNATURE_SIZE = 64


class BlockIdFlag(IntEnum):
    ABSENT = 1
    COMMIT = 2
    NIL = 3


class SignedMsgType(IntEnum):
    PREVOTE = 1
    PRECOMMIT = 2


def vote_sign_bytes(
    chain_id: str,
    msg_type: SignedMsgType,
    height: int,
    round: int,
    block_id: Optional[BlockId],
    timestamp: Time,
) -> bytes:
    """Canonical message a validator signs for a vote."""
    return canonical_bytes(
        {
            "block_id": block_id.to_dict() if block_id is not None else None,
            "chain_id": chain_id,
            "height": height,
            "round": round,
            "timestamp": timestamp.to_rfc3339(),
            "type": int(msg_type),
        }
    )


@dataclass(frozen=True)
class CommitSig:
    """One validator's entry in a commit: absent, a vote for the block, or a nil vote."""

    block_id_flag: BlockIdFlag
    validator_address: bytes = b""
    timestamp: Optional[Time] = None
    signature: bytes = b""

    def __post_init__(self) -> None:
        if self.block_id_flag == BlockIdFlag.ABSENT:
            if self.validator_address or self.signature or self.timestamp is not None:
                raise DeserializationError(
                    "Absent commit signature must not carry address, timestamp or signature",
                    field="signatures",
                )
            return
        if len(self.validator_address) != ADDRESS_LENGTH:
            raise DeserializationError(
                f"Validator address must be {ADDRESS_LENGTH} bytes", field="validator_address"
            )
        if self.timestamp is None:
            raise DeserializationError("Commit signature is missing its timestamp", field="timestamp")
        if not self.signature:
            raise DeserializationError("Commit signature is empty", field="signature")
        if len(self.signature) > MAX_SIGNATURE_SIZE:
            raise DeserializationError(
                f"Signature exceeds {MAX_SIGNATURE_SIZE} bytes", field="signature"
            )

    @classmethod
    def absent(cls) -> "CommitSig":
        return cls(BlockIdFlag.ABSENT)

    @classmethod
    def for_block(cls, validator_address: bytes, timestamp: Time, signature: bytes) -> "CommitSig":
        return cls(BlockIdFlag.COMMIT, validator_address, timestamp, signature)

    @classmethod
    def nil(cls, validator_address: bytes, timestamp: Time, signature: bytes) -> "CommitSig":
        return cls(BlockIdFlag.NIL, validator_address, timestamp, signature)

    def is_absent(self) -> bool:
        return self.block_id_flag == BlockIdFlag.ABSENT

    def is_commit(self) -> bool:
        return self.block_id_flag == BlockIdFlag.COMMIT

    def is_nil(self) -> bool:
        return self.block_id_flag == BlockIdFlag.NIL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "block_id_flag": int(self.block_id_flag),
            "validator_address": bytes_to_hex(self.validator_address),
            "timestamp": self.timestamp.to_rfc3339() if self.timestamp is not None else None,
            "signature": bytes_to_base64(self.signature) if self.signature else None,
        }

    @classmethod
    def from_dict(cls, payload: Optional[Mapping[str, Any]]) -> "CommitSig":
        if payload is None:
            return cls.absent()
        payload = expect_mapping(payload, "signature")
        try:
            flag = BlockIdFlag(int(require_field(payload, "block_id_flag")))
        except (TypeError, ValueError) as exc:
            raise DeserializationError(
                f"Unknown block_id_flag: {payload.get('block_id_flag')!r}", field="block_id_flag"
            ) from exc
        if flag == BlockIdFlag.ABSENT:
            return cls.absent()
        return cls(
            block_id_flag=flag,
            validator_address=hex_to_bytes(payload.get("validator_address"), "validator_address"),
            timestamp=Time.parse_rfc3339(require_field(payload, "timestamp")),
            signature=base64_to_bytes(require_field(payload, "signature"), "signature"),
        )

    @classmethod
    def from_legacy_vote(cls, payload: Optional[Mapping[str, Any]]) -> "CommitSig":
        """Convert an entry of the older ``precommits`` array (a full vote or null)."""
        if payload is None:
            return cls.absent()
        vote = Vote.from_dict(payload)
        flag = BlockIdFlag.COMMIT if vote.is_for_block() else BlockIdFlag.NIL
        return cls(flag, vote.validator_address, vote.timestamp, vote.signature)


@dataclass(frozen=True)
class Vote:
    """A fully specified signed vote."""

    msg_type: SignedMsgType
    height: int
    round: int
    block_id: Optional[BlockId]
    timestamp: Time
    validator_address: bytes
    validator_index: int
    signature: bytes = b""

    def is_for_block(self) -> bool:
        return self.block_id is not None and not self.block_id.is_zero()

    def sign_bytes(self, chain_id: str) -> bytes:
        block_id = self.block_id if self.is_for_block() else None
        return vote_sign_bytes(
            chain_id, self.msg_type, self.height, self.round, block_id, self.timestamp
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": int(self.msg_type),
            "height": serialize_u64(self.height),
            "round": str(self.round),
            "block_id": self.block_id.to_dict() if self.is_for_block() else None,
            "timestamp": self.timestamp.to_rfc3339(),
            "validator_address": bytes_to_hex(self.validator_address),
            "validator_index": str(self.validator_index),
            "signature": bytes_to_base64(self.signature),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Vote":
        payload = expect_mapping(payload, "vote")
        try:
            msg_type = SignedMsgType(int(require_field(payload, "type")))
        except (TypeError, ValueError) as exc:
            raise DeserializationError(
                f"Unknown vote type: {payload.get('type')!r}", field="type"
            ) from exc
        block_id = BlockId.from_dict(payload.get("block_id"))
        return cls(
            msg_type=msg_type,
            height=parse_u64(require_field(payload, "height"), "height"),
            round=parse_i64(payload.get("round", 0), "round"),
            block_id=None if block_id.is_zero() else block_id,
            timestamp=Time.parse_rfc3339(require_field(payload, "timestamp")),
            validator_address=hex_to_bytes(
                require_field(payload, "validator_address"), "validator_address"
            ),
            validator_index=parse_i64(payload.get("validator_index", 0), "validator_index"),
            signature=base64_to_bytes(payload.get("signature") or "", "signature"),
        )
