"""
Trusting-period header verification.

Given a header the client already trusts and the validator set that header
announced for the next block, decide whether a newer signed header can be
trusted without replaying the blocks in between:

1. the commit must commit to the candidate header;
2. the supplied validator set must be the one the candidate names;
3. the candidate must be on the trusted chain and on the configured chain,
   when one is set;
4. the candidate must be higher than the trusted header;
5. validators already trusted must hold more than the trust threshold of
   their total power among the candidate's signers;
6. the candidate's own validators must hold more than two thirds of theirs.

Expiry of the trusted state is a separate check (``check_expiry``) so callers
can order and test it independently of the clock.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import timedelta
from fractions import Fraction
from typing import Any, List, Mapping, Optional, Sequence, Tuple

from xai_light.blockchain.block import Commit, Header, SignedHeader
from xai_light.blockchain.validator import Validator, ValidatorSet
from xai_light.core.config import LightClientConfig
from xai_light.core.crypto_utils import (
    DefaultSignatureVerifier,
    Hasher,
    Sha256Hasher,
    SignatureVerifier,
)
from xai_light.core.lite_exceptions import (
    ChainIdMismatchError,
    ExpiredError,
    HeaderCommitMismatchError,
    InsufficientNewPowerError,
    InsufficientTrustedPowerError,
    LiteClientError,
    NonIncreasingHeightError,
    ValidatorSetMismatchError,
)
from xai_light.core.serializers import bytes_to_hex, require_field
from xai_light.core.structured_logger import StructuredLogger, get_structured_logger
from xai_light.core.timestamp import Time, timedelta_to_nanos
from xai_light.lite.trust import (
    ONE_THIRD,
    TWO_THIRDS,
    TrustThreshold,
    has_sufficient_voting_power,
)

__all__ = [
    "LiteBlock",
    "TrustedState",
    "Verifier",
    "VotingPowerTally",
    "check_expiry",
    "has_sufficient_voting_power",
    "verify_trusting",
]


@dataclass(frozen=True)
class VotingPowerTally:
    """Voting power of valid for-block signatures out of a set's total."""

    tallied: int
    total: int
    signers: Tuple[bytes, ...] = ()
    invalid_signatures: Tuple[bytes, ...] = ()

    @property
    def ratio(self) -> Fraction:
        if self.total <= 0:
            return Fraction(0)
        return Fraction(self.tallied, self.total)

    def exceeds(self, threshold: TrustThreshold) -> bool:
        return has_sufficient_voting_power(self.tallied, self.total, threshold)


@dataclass(frozen=True)
class TrustedState:
    """A trusted signed header plus the validator set it announced for its successor."""

    signed_header: SignedHeader
    next_validator_set: ValidatorSet
    hasher: Optional[Hasher] = field(default=None, compare=False, repr=False)

    def __post_init__(self) -> None:
        expected = self.signed_header.header.next_validators_hash
        if self.next_validator_set.hash(self.hasher) != expected:
            raise ValidatorSetMismatchError(
                "Next validator set does not match the trusted header's next_validators_hash",
                details={"expected": bytes_to_hex(expected)},
            )

    @property
    def header(self) -> Header:
        return self.signed_header.header

    @property
    def height(self) -> int:
        return self.signed_header.header.height


@dataclass(frozen=True)
class LiteBlock:
    """One hop of input: a signed header with its own and its next validator sets."""

    signed_header: SignedHeader
    validator_set: ValidatorSet
    next_validator_set: ValidatorSet

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any], hasher: Optional[Hasher] = None) -> "LiteBlock":
        return cls(
            signed_header=SignedHeader.from_dict(require_field(payload, "signed_header")),
            validator_set=ValidatorSet.from_dict(require_field(payload, "validator_set"), hasher),
            next_validator_set=ValidatorSet.from_dict(
                require_field(payload, "next_validator_set"), hasher
            ),
        )


def check_expiry(trusted_header: Header, trusting_period: timedelta, now: Time) -> None:
    """Raise ExpiredError if ``now - trusted_header.time >= trusting_period``."""
    elapsed = now.duration_since(trusted_header.time)
    if elapsed >= timedelta_to_nanos(trusting_period):
        raise ExpiredError(
            f"Trusted header at height {trusted_header.height} expired",
            details={
                "trusted_time": trusted_header.time.to_rfc3339(),
                "now": now.to_rfc3339(),
                "trusting_period_seconds": trusting_period.total_seconds(),
            },
        )


class Verifier:
    """Pure verification over immutable inputs.

    The signature and hashing capabilities are injected; the verifier keeps
    no state between calls, so one instance can serve concurrent callers.
    """

    def __init__(
        self,
        signature_verifier: Optional[SignatureVerifier] = None,
        hasher: Optional[Hasher] = None,
        trust_threshold: TrustThreshold = ONE_THIRD,
        trusting_period: Optional[timedelta] = None,
        max_workers: int = 1,
        logger: Optional[StructuredLogger] = None,
        chain_id: Optional[str] = None,
    ) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.signature_verifier = signature_verifier or DefaultSignatureVerifier()
        self.hasher = hasher or Sha256Hasher()
        self.trust_threshold = trust_threshold
        self.trusting_period = trusting_period
        self.max_workers = max_workers
        self.chain_id = chain_id
        self.logger = logger or get_structured_logger("xai_light.lite.verifier")

    @classmethod
    def from_config(
        cls,
        config: LightClientConfig,
        signature_verifier: Optional[SignatureVerifier] = None,
        hasher: Optional[Hasher] = None,
        max_workers: int = 1,
    ) -> "Verifier":
        return cls(
            signature_verifier=signature_verifier,
            hasher=hasher,
            trust_threshold=config.trust_threshold,
            trusting_period=config.trusting_period,
            max_workers=max_workers,
            logger=get_structured_logger("xai_light.lite.verifier", log_level=config.log_level),
            chain_id=config.chain_id,
        )

    # ==================== Voting power ====================

    def _signature_valid(
        self, chain_id: str, commit: Commit, index: int, validator: Validator
    ) -> bool:
        message = commit.vote_sign_bytes(chain_id, index)
        return self.signature_verifier.verify(
            validator.public_key, message, commit.signatures[index].signature
        )

    def _tally(
        self,
        chain_id: str,
        commit: Commit,
        pairs: Sequence[Tuple[int, Validator]],
        total: int,
    ) -> VotingPowerTally:
        if self.max_workers > 1 and len(pairs) > 1:
            with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
                results = list(
                    pool.map(lambda pair: self._signature_valid(chain_id, commit, *pair), pairs)
                )
        else:
            results = [self._signature_valid(chain_id, commit, index, v) for index, v in pairs]

        tallied = 0
        signers: List[bytes] = []
        invalid: List[bytes] = []
        for (index, validator), valid in zip(pairs, results):
            if not valid:
                invalid.append(validator.address)
                self.logger.warning(
                    "Rejected commit signature",
                    height=commit.height,
                    index=index,
                    validator=validator.address,
                )
                continue
            if commit.signatures[index].is_commit():
                tallied += validator.voting_power
                signers.append(validator.address)

        tally = VotingPowerTally(
            tallied=tallied,
            total=total,
            signers=tuple(signers),
            invalid_signatures=tuple(invalid),
        )
        self.logger.debug(
            "Commit tallied",
            height=commit.height,
            tallied=tally.tallied,
            total=tally.total,
            invalid=len(invalid),
        )
        return tally

    def tally_commit(self, chain_id: str, commit: Commit, validator_set: ValidatorSet) -> VotingPowerTally:
        """Tally a commit against the set that produced it, position by position.

        Length and signer mismatches are raised before any signature is checked.
        """
        pairs = validator_set.zip_signatures(commit.signatures)
        indexed = [
            (index, validator)
            for index, (validator, commit_sig) in enumerate(pairs)
            if not commit_sig.is_absent()
        ]
        return self._tally(chain_id, commit, indexed, validator_set.total_voting_power)

    def tally_commit_trusting(
        self, chain_id: str, commit: Commit, validator_set: ValidatorSet
    ) -> VotingPowerTally:
        """Tally a commit against a set that may differ from its signers.

        Signatures are matched by validator address; signers outside the set
        are ignored and each validator counts at most once.
        """
        seen = set()
        indexed = []
        for index, commit_sig in enumerate(commit.signatures):
            if commit_sig.is_absent():
                continue
            validator = validator_set.validator_by_address(commit_sig.validator_address)
            if validator is None or validator.address in seen:
                continue
            seen.add(validator.address)
            indexed.append((index, validator))
        return self._tally(chain_id, commit, indexed, validator_set.total_voting_power)

    # ==================== Verification ====================

    def _reject(self, error: LiteClientError, **fields: Any) -> LiteClientError:
        self.logger.verification_event(error.kind.value, reason=error.message, **fields)
        return error

    def verify_trusting(
        self,
        trusted_header: Header,
        candidate: SignedHeader,
        candidate_validator_set: ValidatorSet,
        trusted_next_validator_set: ValidatorSet,
    ) -> None:
        """Return None if ``candidate`` can be trusted, otherwise raise the failing check."""
        header = candidate.header
        commit = candidate.commit

        header_hash = header.hash(self.hasher)
        if commit.block_id.hash != header_hash:
            raise self._reject(
                HeaderCommitMismatchError(
                    "Commit does not commit to the candidate header",
                    details={
                        "header_hash": bytes_to_hex(header_hash),
                        "commit_block_id": bytes_to_hex(commit.block_id.hash),
                    },
                ),
                height=header.height,
            )

        validators_hash = candidate_validator_set.hash(self.hasher)
        if header.validators_hash != validators_hash:
            raise self._reject(
                ValidatorSetMismatchError(
                    "Supplied validator set is not the one the header names",
                    details={
                        "header_validators_hash": bytes_to_hex(header.validators_hash),
                        "validator_set_hash": bytes_to_hex(validators_hash),
                    },
                ),
                height=header.height,
            )

        if header.chain_id != trusted_header.chain_id:
            raise self._reject(
                ChainIdMismatchError(
                    f"Candidate chain {header.chain_id!r} differs from trusted chain "
                    f"{trusted_header.chain_id!r}",
                    details={"trusted": trusted_header.chain_id, "candidate": header.chain_id},
                ),
                height=header.height,
            )
        if self.chain_id is not None and header.chain_id != self.chain_id:
            raise self._reject(
                ChainIdMismatchError(
                    f"Candidate chain {header.chain_id!r} is not the configured chain "
                    f"{self.chain_id!r}",
                    details={"expected": self.chain_id, "candidate": header.chain_id},
                ),
                height=header.height,
            )

        if header.height <= trusted_header.height:
            raise self._reject(
                NonIncreasingHeightError(trusted_header.height, header.height),
                height=header.height,
            )

        # Structural pairing of the candidate's own set happens before any tally.
        candidate_validator_set.zip_signatures(commit.signatures)

        trusted = self.tally_commit_trusting(header.chain_id, commit, trusted_next_validator_set)
        if not trusted.exceeds(self.trust_threshold):
            raise self._reject(
                InsufficientTrustedPowerError(
                    "Trusted validators signed with insufficient voting power",
                    tallied=trusted.tallied,
                    total=trusted.total,
                    threshold=str(self.trust_threshold),
                ),
                height=header.height,
            )

        own = self.tally_commit(header.chain_id, commit, candidate_validator_set)
        if not own.exceeds(TWO_THIRDS):
            raise self._reject(
                InsufficientNewPowerError(
                    "Candidate validators signed with insufficient voting power",
                    tallied=own.tallied,
                    total=own.total,
                    threshold=str(TWO_THIRDS),
                ),
                height=header.height,
            )

        self.logger.verification_event(
            "verified",
            chain_id=header.chain_id,
            trusted_height=trusted_header.height,
            height=header.height,
            trusted_power=trusted.tallied,
            new_power=own.tallied,
        )

    def check_expiry(
        self, trusted_header: Header, now: Time, trusting_period: Optional[timedelta] = None
    ) -> None:
        period = trusting_period if trusting_period is not None else self.trusting_period
        if period is None:
            raise ValueError("A trusting period is required to check expiry")
        try:
            check_expiry(trusted_header, period, now)
        except ExpiredError as exc:
            raise self._reject(exc, height=trusted_header.height)

    def update_trusted_state(
        self,
        trusted_state: TrustedState,
        block: LiteBlock,
        now: Time,
        trusting_period: Optional[timedelta] = None,
    ) -> TrustedState:
        """Check expiry, verify one hop and return the state to trust next."""
        self.check_expiry(trusted_state.header, now, trusting_period)
        self.verify_trusting(
            trusted_state.header,
            block.signed_header,
            block.validator_set,
            trusted_state.next_validator_set,
        )
        try:
            return TrustedState(block.signed_header, block.next_validator_set, hasher=self.hasher)
        except ValidatorSetMismatchError as exc:
            raise self._reject(exc, height=block.signed_header.header.height)

    def verify_sequence(
        self,
        trusted_state: TrustedState,
        blocks: Sequence[LiteBlock],
        now: Time,
        trusting_period: Optional[timedelta] = None,
    ) -> TrustedState:
        """Walk ``blocks`` one hop at a time, stopping at the first failure."""
        state = trusted_state
        for block in blocks:
            state = self.update_trusted_state(state, block, now, trusting_period)
        return state


def verify_trusting(
    trusted_header: Header,
    candidate: SignedHeader,
    candidate_validator_set: ValidatorSet,
    trusted_next_validator_set: ValidatorSet,
) -> None:
    """``Verifier.verify_trusting`` with default capabilities and a 1/3 trust threshold."""
    Verifier().verify_trusting(
        trusted_header, candidate, candidate_validator_set, trusted_next_validator_set
    )
