"""
Validators and canonical validator sets.

A ``ValidatorSet`` is sorted by address so that its hash does not depend on
the order in which members were supplied. Commits are evaluated against a set
positionally, which is why the ordering is part of the set's identity.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from xai_light.blockchain.merkle import (
    SimpleProof,
    simple_hash_from_byte_slices,
    simple_proofs_from_byte_slices,
)
from xai_light.core.crypto_utils import (
    ADDRESS_LENGTH,
    Hasher,
    PublicKey,
    Sha256Hasher,
    address_from_public_key,
)
from xai_light.core.lite_exceptions import (
    CommitLengthMismatchError,
    CommitSignerMismatchError,
    DeserializationError,
    InvalidValidatorSetError,
)
from xai_light.core.serializers import (
    bytes_to_hex,
    canonical_bytes,
    hex_to_bytes,
    parse_i64,
    parse_u64,
    require_field,
)

# Keeps sums of voting power (and their products with threshold terms) well
# inside int64 for peers that do the arithmetic in fixed-width integers.
MAX_TOTAL_VOTING_POWER = (2**63 - 1) // 8


@dataclass(frozen=True)
class Validator:
    """One consensus participant."""

    address: bytes
    public_key: PublicKey
    voting_power: int
    proposer_priority: int = 0

    def __post_init__(self) -> None:
        if len(self.address) != ADDRESS_LENGTH:
            raise InvalidValidatorSetError(
                f"Validator address must be {ADDRESS_LENGTH} bytes, got {len(self.address)}"
            )
        if isinstance(self.voting_power, bool) or not isinstance(self.voting_power, int):
            raise InvalidValidatorSetError("Voting power must be an integer.")
        if self.voting_power < 0:
            raise InvalidValidatorSetError(
                f"Validator {bytes_to_hex(self.address)} has negative voting power"
            )

    @classmethod
    def new(
        cls,
        public_key: PublicKey,
        voting_power: int,
        proposer_priority: int = 0,
        hasher: Optional[Hasher] = None,
    ) -> "Validator":
        """Build a validator whose address is derived from its key."""
        return cls(
            address=address_from_public_key(public_key, hasher),
            public_key=public_key,
            voting_power=voting_power,
            proposer_priority=proposer_priority,
        )

    def hash_bytes(self) -> bytes:
        """Canonical encoding hashed into the set hash.

        Proposer priority changes every round, so it is left out.
        """
        return canonical_bytes(
            {"pub_key": self.public_key.to_dict(), "voting_power": self.voting_power}
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": bytes_to_hex(self.address),
            "pub_key": self.public_key.to_dict(),
            "voting_power": str(self.voting_power),
            "proposer_priority": str(self.proposer_priority),
        }

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "Validator":
        return cls(
            address=hex_to_bytes(require_field(payload, "address"), "address"),
            public_key=PublicKey.from_dict(require_field(payload, "pub_key")),
            voting_power=parse_u64(require_field(payload, "voting_power"), "voting_power"),
            proposer_priority=parse_i64(payload.get("proposer_priority", 0), "proposer_priority"),
        )

    def __repr__(self) -> str:
        return f"Validator(address='{bytes_to_hex(self.address)[:8]}...', power={self.voting_power})"


class ValidatorSet:
    """Ordered, deduplicated, non-empty collection of validators."""

    def __init__(self, validators: Iterable[Validator], hasher: Optional[Hasher] = None) -> None:
        self.hasher = hasher or Sha256Hasher()
        members = sorted(validators, key=lambda v: v.address)
        if not members:
            raise InvalidValidatorSetError("Validator set must not be empty.")

        seen = set()
        for validator in members:
            if validator.address in seen:
                raise InvalidValidatorSetError(
                    f"Duplicate validator address: {bytes_to_hex(validator.address)}"
                )
            seen.add(validator.address)
            if address_from_public_key(validator.public_key, self.hasher) != validator.address:
                raise InvalidValidatorSetError(
                    f"Address {bytes_to_hex(validator.address)} is not derived from its public key"
                )

        self._validators: Tuple[Validator, ...] = tuple(members)
        self._index = {validator.address: i for i, validator in enumerate(members)}
        if self.total_voting_power > MAX_TOTAL_VOTING_POWER:
            raise InvalidValidatorSetError(
                f"Total voting power {self.total_voting_power} exceeds {MAX_TOTAL_VOTING_POWER}"
            )

    @property
    def validators(self) -> Tuple[Validator, ...]:
        return self._validators

    @property
    def total_voting_power(self) -> int:
        return sum(validator.voting_power for validator in self._validators)

    def hash(self, hasher: Optional[Hasher] = None) -> bytes:
        """Merkle root over member encodings, in address order."""
        return simple_hash_from_byte_slices(
            [validator.hash_bytes() for validator in self._validators], hasher if hasher is not None else self.hasher
        )

    def validator_by_address(self, address: bytes) -> Optional[Validator]:
        index = self._index.get(address)
        return None if index is None else self._validators[index]

    def index_of(self, address: bytes) -> Optional[int]:
        return self._index.get(address)

    def prove(self, address: bytes) -> SimpleProof:
        """Merkle proof that ``address`` is a member under ``hash()``."""
        index = self._index.get(address)
        if index is None:
            raise KeyError(f"Validator {bytes_to_hex(address)} is not in the set")
        _, proofs = simple_proofs_from_byte_slices(
            [validator.hash_bytes() for validator in self._validators], self.hasher
        )
        return proofs[index]

    def zip_signatures(self, signatures: Sequence[Any]) -> List[Tuple[Validator, Any]]:
        """Pair each commit signature with the validator at the same position.

        Every pairing is checked before any is returned: the lengths must match
        and every non-absent signature must name the validator it is paired with.
        """
        if len(signatures) != len(self._validators):
            raise CommitLengthMismatchError(len(signatures), len(self._validators))
        pairs = list(zip(self._validators, signatures))
        for index, (validator, signature) in enumerate(pairs):
            if signature.is_absent():
                continue
            if signature.validator_address != validator.address:
                raise CommitSignerMismatchError(
                    f"Signature {index} is from {bytes_to_hex(signature.validator_address)} "
                    f"but position {index} belongs to {bytes_to_hex(validator.address)}",
                    details={"index": index},
                )
        return pairs

    def __len__(self) -> int:
        return len(self._validators)

    def __iter__(self) -> Iterator[Validator]:
        return iter(self._validators)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ValidatorSet):
            return NotImplemented
        return self._validators == other._validators

    def __hash__(self) -> int:
        return hash(self._validators)

    def to_dict(self) -> Dict[str, Any]:
        return {"validators": [validator.to_dict() for validator in self._validators]}

    @classmethod
    def from_dict(
        cls,
        payload: Union[Mapping[str, Any], List[Mapping[str, Any]]],
        hasher: Optional[Hasher] = None,
    ) -> "ValidatorSet":
        """Accept ``{"validators": [...]}`` or a bare array of validator info."""
        if isinstance(payload, Mapping):
            entries = require_field(payload, "validators")
        else:
            entries = payload
        if not isinstance(entries, list):
            raise DeserializationError("Validators must be an array", field="validators")
        return cls([Validator.from_dict(entry) for entry in entries], hasher=hasher)

    def __repr__(self) -> str:
        return f"ValidatorSet(size={len(self)}, total_power={self.total_voting_power})"
