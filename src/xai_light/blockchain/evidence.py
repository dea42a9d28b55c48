"""
Evidence of malfeasance by validators (signing conflicting votes).

Evidence travels in two stages. ``Evidence`` is an opaque byte payload whose
only guarantee is lossless transport: JSON carries it as a base64 string.
``DuplicateVoteEvidence.from_evidence`` is the separate decode step that
recovers the pair of conflicting votes for misbehavior handling.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence

from xai_light.blockchain.vote import Vote
from xai_light.core.crypto_utils import PublicKey, SignatureVerifier
from xai_light.core.lite_exceptions import (
    DeserializationError,
    EvidenceDecodeError,
    InvalidEvidenceError,
    StructuralError,
)
from xai_light.core.serializers import (
    bytes_to_hex,
    canonical_bytes,
    expect_mapping,
    parse_u64,
    serialize_u64,
)

DUPLICATE_VOTE_TYPE = "tendermint/DuplicateVoteEvidence"


class Evidence:
    """Immutable opaque evidence payload."""

    __slots__ = ("_payload",)

    def __init__(self, payload: bytes) -> None:
        object.__setattr__(self, "_payload", bytes(payload))

    @classmethod
    def new(cls, payload: bytes) -> "Evidence":
        return cls(payload)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError("Evidence is immutable")

    def to_bytes(self) -> bytes:
        return self._payload

    def to_json(self) -> str:
        return base64.b64encode(self._payload).decode("ascii")

    @classmethod
    def from_json(cls, value: Any) -> "Evidence":
        if not isinstance(value, str):
            raise EvidenceDecodeError(f"Evidence must be a base64 string, got {type(value).__name__}")
        try:
            payload = base64.b64decode(value.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError) as exc:
            raise EvidenceDecodeError(f"Invalid base64 evidence: {exc}", cause=exc) from exc
        return cls(payload)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Evidence):
            return NotImplemented
        return self._payload == other._payload

    def __hash__(self) -> int:
        return hash(self._payload)

    def __repr__(self) -> str:
        return f"Evidence({len(self._payload)} bytes)"


@dataclass(frozen=True)
class DuplicateVoteEvidence:
    """Two votes by the same validator for different blocks at one height and round."""

    vote_a: Vote
    vote_b: Vote

    @classmethod
    def from_evidence(cls, evidence: Evidence) -> "DuplicateVoteEvidence":
        try:
            document = json.loads(evidence.to_bytes().decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise EvidenceDecodeError(f"Evidence payload is not a JSON document: {exc}", cause=exc) from exc
        if not isinstance(document, Mapping) or document.get("type") != DUPLICATE_VOTE_TYPE:
            raise EvidenceDecodeError("Evidence payload is not duplicate-vote evidence")
        try:
            value = document["value"]
            return cls(Vote.from_dict(value["vote_a"]), Vote.from_dict(value["vote_b"]))
        except (KeyError, TypeError) as exc:
            raise EvidenceDecodeError(f"Duplicate-vote evidence is incomplete: {exc}", cause=exc) from exc
        except StructuralError as exc:
            raise EvidenceDecodeError(exc.message, cause=exc) from exc

    def to_evidence(self) -> Evidence:
        return Evidence(
            canonical_bytes(
                {
                    "type": DUPLICATE_VOTE_TYPE,
                    "value": {"vote_a": self.vote_a.to_dict(), "vote_b": self.vote_b.to_dict()},
                }
            )
        )

    @property
    def height(self) -> int:
        return self.vote_a.height

    @property
    def validator_address(self) -> bytes:
        return self.vote_a.validator_address

    def validate(self, chain_id: str, public_key: PublicKey, verifier: SignatureVerifier) -> None:
        """Raise InvalidEvidenceError unless both votes are valid and conflict."""
        a, b = self.vote_a, self.vote_b
        if (a.height, a.round, a.msg_type) != (b.height, b.round, b.msg_type):
            raise InvalidEvidenceError(
                "Votes are for different height, round or type",
                details={"height": [a.height, b.height], "round": [a.round, b.round]},
            )
        if a.validator_address != b.validator_address:
            raise InvalidEvidenceError(
                "Votes are from different validators",
                details={
                    "validator_a": bytes_to_hex(a.validator_address),
                    "validator_b": bytes_to_hex(b.validator_address),
                },
            )
        if a.block_id == b.block_id:
            raise InvalidEvidenceError("Votes are for the same block id")
        for label, vote in (("vote_a", a), ("vote_b", b)):
            if not verifier.verify(public_key, vote.sign_bytes(chain_id), vote.signature):
                raise InvalidEvidenceError(f"Invalid signature on {label}", details={"vote": label})


class EvidenceData:
    """Read-only list of evidence carried in a block (``None`` when the field was null)."""

    def __init__(self, evidence: Optional[Sequence[Evidence]] = None) -> None:
        self._evidence = None if evidence is None else tuple(evidence)

    def iter(self) -> Iterator[Evidence]:
        return iter(self._evidence or ())

    def __iter__(self) -> Iterator[Evidence]:
        return self.iter()

    def into_vec(self) -> List[Evidence]:
        return list(self.iter())

    def __len__(self) -> int:
        return len(self._evidence or ())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EvidenceData):
            return NotImplemented
        return self.into_vec() == other.into_vec()

    def to_dict(self) -> Dict[str, Any]:
        if self._evidence is None:
            return {"evidence": None}
        return {"evidence": [item.to_json() for item in self._evidence]}

    @classmethod
    def from_dict(cls, payload: Optional[Mapping[str, Any]]) -> "EvidenceData":
        if payload is None:
            return cls()
        payload = expect_mapping(payload, "evidence_data")
        entries = payload.get("evidence")
        if entries is None:
            return cls()
        if not isinstance(entries, list):
            raise EvidenceDecodeError("Evidence list must be an array")
        return cls([Evidence.from_json(entry) for entry in entries])


@dataclass(frozen=True)
class EvidenceParams:
    """Bounds how many blocks old evidence may be and still be acted on."""

    max_age: int

    def __post_init__(self) -> None:
        object.__setattr__(self, "max_age", parse_u64(self.max_age, "max_age"))

    def is_actionable(self, evidence_height: int, current_height: int) -> bool:
        if evidence_height > current_height:
            return False
        return current_height - evidence_height <= self.max_age

    def to_dict(self) -> Dict[str, str]:
        return {"max_age": serialize_u64(self.max_age)}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "EvidenceParams":
        payload = expect_mapping(payload, "evidence_params")
        if "max_age" not in payload:
            raise DeserializationError("Missing required field 'max_age'", field="max_age")
        return cls(max_age=parse_u64(payload["max_age"], "max_age"))
