"""
Block headers, commits and signed headers.

A header binds itself to the validator set that must sign it
(``validators_hash``) and to the set expected to sign its successor
(``next_validators_hash``). A commit is only meaningful together with the
validator set it is evaluated against.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Tuple

from xai_light.blockchain.block_id import BlockId
from xai_light.blockchain.merkle import simple_hash_from_byte_slices
from xai_light.blockchain.vote import CommitSig, SignedMsgType, Vote
from xai_light.core.crypto_utils import Hasher
from xai_light.core.lite_exceptions import (
    DeserializationError,
    MissingCommitError,
    MissingHeaderError,
)
from xai_light.core.serializers import (
    bytes_to_hex,
    canonical_bytes,
    hex_to_bytes,
    parse_i64,
    parse_u64,
    expect_mapping,
    require_field,
    serialize_u64,
)
from xai_light.core.timestamp import Time


@dataclass(frozen=True)
class Version:
    block: int = 0
    app: int = 0

    def to_dict(self) -> Dict[str, str]:
        return {"block": serialize_u64(self.block), "app": serialize_u64(self.app)}

    @classmethod
    def from_dict(cls, payload: Optional[Mapping[str, Any]]) -> "Version":
        if payload is None:
            return cls()
        payload = expect_mapping(payload, "version")
        return cls(
            block=parse_u64(payload.get("block", 0), "version.block"),
            app=parse_u64(payload.get("app", 0), "version.app"),
        )


_HASH_FIELDS = (
    "last_commit_hash",
    "data_hash",
    "validators_hash",
    "next_validators_hash",
    "consensus_hash",
    "app_hash",
    "last_results_hash",
    "evidence_hash",
)


@dataclass(frozen=True)
class Header:
    chain_id: str
    height: int
    time: Time
    validators_hash: bytes
    next_validators_hash: bytes
    version: Version = field(default_factory=Version)
    last_block_id: Optional[BlockId] = None
    last_commit_hash: bytes = b""
    data_hash: bytes = b""
    consensus_hash: bytes = b""
    app_hash: bytes = b""
    last_results_hash: bytes = b""
    evidence_hash: bytes = b""
    proposer_address: bytes = b""

    def __post_init__(self) -> None:
        if not self.chain_id:
            raise DeserializationError("Header chain_id cannot be empty", field="chain_id")
        if self.height <= 0:
            raise DeserializationError("Header height must be positive", field="height")

    def _field_encodings(self) -> List[bytes]:
        values: List[Any] = [
            self.version.to_dict(),
            self.chain_id,
            self.height,
            self.time.to_rfc3339(),
            self.last_block_id.to_dict() if self.last_block_id is not None else None,
        ]
        values.extend(bytes_to_hex(getattr(self, name)) for name in _HASH_FIELDS)
        values.append(bytes_to_hex(self.proposer_address))
        return [canonical_bytes(value) for value in values]

    def hash(self, hasher: Optional[Hasher] = None) -> bytes:
        """Merkle root over the canonical encoding of every header field."""
        return simple_hash_from_byte_slices(self._field_encodings(), hasher)

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "version": self.version.to_dict(),
            "chain_id": self.chain_id,
            "height": serialize_u64(self.height),
            "time": self.time.to_rfc3339(),
            "last_block_id": self.last_block_id.to_dict() if self.last_block_id else None,
        }
        for name in _HASH_FIELDS:
            payload[name] = bytes_to_hex(getattr(self, name))
        payload["proposer_address"] = bytes_to_hex(self.proposer_address)
        return payload

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Header":
        payload = expect_mapping(payload, "header")
        last_block_id = payload.get("last_block_id")
        return cls(
            version=Version.from_dict(payload.get("version")),
            chain_id=str(require_field(payload, "chain_id")),
            height=parse_u64(require_field(payload, "height"), "height"),
            time=Time.parse_rfc3339(require_field(payload, "time")),
            last_block_id=BlockId.from_dict(last_block_id) if last_block_id else None,
            validators_hash=hex_to_bytes(require_field(payload, "validators_hash"), "validators_hash"),
            next_validators_hash=hex_to_bytes(
                require_field(payload, "next_validators_hash"), "next_validators_hash"
            ),
            last_commit_hash=hex_to_bytes(payload.get("last_commit_hash"), "last_commit_hash"),
            data_hash=hex_to_bytes(payload.get("data_hash"), "data_hash"),
            consensus_hash=hex_to_bytes(payload.get("consensus_hash"), "consensus_hash"),
            app_hash=hex_to_bytes(payload.get("app_hash"), "app_hash"),
            last_results_hash=hex_to_bytes(payload.get("last_results_hash"), "last_results_hash"),
            evidence_hash=hex_to_bytes(payload.get("evidence_hash"), "evidence_hash"),
            proposer_address=hex_to_bytes(payload.get("proposer_address"), "proposer_address"),
        )

    def __repr__(self) -> str:
        return f"Header(chain_id='{self.chain_id}', height={self.height}, time='{self.time}')"


@dataclass(frozen=True)
class Commit:
    """Precommit signatures for one block, positionally aligned with its validator set."""

    height: int
    round: int
    block_id: BlockId
    signatures: Tuple[CommitSig, ...] = ()

    def __post_init__(self) -> None:
        if not isinstance(self.signatures, tuple):
            object.__setattr__(self, "signatures", tuple(self.signatures))

    def vote(self, index: int) -> Optional[Vote]:
        """Rebuild the full precommit behind signature ``index`` (None if absent)."""
        commit_sig = self.signatures[index]
        if commit_sig.is_absent():
            return None
        return Vote(
            msg_type=SignedMsgType.PRECOMMIT,
            height=self.height,
            round=self.round,
            block_id=self.block_id if commit_sig.is_commit() else None,
            timestamp=commit_sig.timestamp,
            validator_address=commit_sig.validator_address,
            validator_index=index,
            signature=commit_sig.signature,
        )

    def vote_sign_bytes(self, chain_id: str, index: int) -> bytes:
        vote = self.vote(index)
        if vote is None:
            raise ValueError(f"Signature {index} is absent and has no sign bytes")
        return vote.sign_bytes(chain_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "height": serialize_u64(self.height),
            "round": str(self.round),
            "block_id": self.block_id.to_dict(),
            "signatures": [sig.to_dict() for sig in self.signatures],
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Commit":
        """Accept the ``signatures`` form or the older ``precommits`` array of votes."""
        payload = expect_mapping(payload, "commit")
        field_name = "signatures" if "signatures" in payload else "precommits"
        entries = payload.get(field_name) or []
        if not isinstance(entries, list):
            raise DeserializationError(f"Commit {field_name} must be an array", field=field_name)
        if field_name == "signatures":
            signatures = [CommitSig.from_dict(entry) for entry in entries]
        else:
            signatures = [CommitSig.from_legacy_vote(entry) for entry in entries]

        block_id = BlockId.from_dict(require_field(payload, "block_id"))
        height = payload.get("height")
        if height is None:
            votes = [entry for entry in entries if entry and "height" in entry]
            if not votes:
                raise DeserializationError("Missing required field 'height'", field="height")
            height = votes[0]["height"]
        return cls(
            height=parse_u64(height, "height"),
            round=parse_i64(payload.get("round", 0), "round"),
            block_id=block_id,
            signatures=tuple(signatures),
        )


@dataclass(frozen=True)
class SignedHeader:
    header: Header
    commit: Commit

    def to_dict(self) -> Dict[str, Any]:
        return {"header": self.header.to_dict(), "commit": self.commit.to_dict()}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "SignedHeader":
        """Decode an RPC signed header; absent or null parts raise named errors."""
        payload = expect_mapping(payload, "signed_header")
        header = payload.get("header")
        if header is None:
            raise MissingHeaderError("Signed header is missing its header", details={"field": "header"})
        commit = payload.get("commit")
        if commit is None:
            raise MissingCommitError("Signed header is missing its commit", details={"field": "commit"})
        return cls(header=Header.from_dict(header), commit=Commit.from_dict(commit))
