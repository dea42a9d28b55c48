"""
Light client exception hierarchy for XAI Light.

Every failure the verification core can report is a concrete subclass of
``LiteClientError`` tagged with a member of the closed ``ErrorKind`` enum, so
callers can dispatch exhaustively on ``error.kind`` or catch by category
(structural, hash mismatch, insufficient power, expiry, height).
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(Enum):
    MISSING_HEADER = "missing_header"
    MISSING_COMMIT = "missing_commit"
    COMMIT_LENGTH_MISMATCH = "commit_length_mismatch"
    COMMIT_SIGNER_MISMATCH = "commit_signer_mismatch"
    INVALID_VALIDATOR_SET = "invalid_validator_set"
    INVALID_TIMESTAMP = "invalid_timestamp"
    INVALID_TRUST_THRESHOLD = "invalid_trust_threshold"
    DESERIALIZATION = "deserialization"
    EVIDENCE_DECODE = "evidence_decode"
    INVALID_EVIDENCE = "invalid_evidence"
    INVALID_TAG = "invalid_tag"
    HEADER_COMMIT_MISMATCH = "header_commit_mismatch"
    VALIDATOR_SET_MISMATCH = "validator_set_mismatch"
    CHAIN_ID_MISMATCH = "chain_id_mismatch"
    INSUFFICIENT_TRUSTED_POWER = "insufficient_trusted_power"
    INSUFFICIENT_NEW_POWER = "insufficient_new_power"
    EXPIRED = "expired"
    NON_INCREASING_HEIGHT = "non_increasing_height"


class LiteClientError(Exception):
    """Base exception for all light client errors.

    Attributes:
        message: Human-readable error description
        details: Additional context about the error
    """

    kind: ErrorKind

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


# ==================== Structural Errors ====================


class StructuralError(LiteClientError):
    """Raised when input is malformed at the construction or decoding boundary."""


class MissingHeaderError(StructuralError):
    """Signed header arrived without its header."""

    kind = ErrorKind.MISSING_HEADER


class MissingCommitError(StructuralError):
    """Signed header arrived without its commit."""

    kind = ErrorKind.MISSING_COMMIT


class CommitLengthMismatchError(StructuralError):
    """Commit signature count differs from the validator set size."""

    kind = ErrorKind.COMMIT_LENGTH_MISMATCH

    def __init__(self, signatures: int, validators: int) -> None:
        super().__init__(
            f"Commit has {signatures} signatures but validator set has {validators} members",
            details={"signatures": signatures, "validators": validators},
        )
        self.signatures = signatures
        self.validators = validators


class CommitSignerMismatchError(StructuralError):
    """A commit signature names a different validator than its position implies."""

    kind = ErrorKind.COMMIT_SIGNER_MISMATCH


class InvalidValidatorSetError(StructuralError):
    kind = ErrorKind.INVALID_VALIDATOR_SET


class InvalidTimestampError(StructuralError):
    kind = ErrorKind.INVALID_TIMESTAMP


class InvalidTrustThresholdError(StructuralError):
    kind = ErrorKind.INVALID_TRUST_THRESHOLD


class DeserializationError(StructuralError):
    """Raised when a wire document is missing a field or carries a malformed one.

    The offending field is available as ``details["field"]``.
    """

    kind = ErrorKind.DESERIALIZATION

    def __init__(self, message: str, field: Optional[str] = None, **details: Any) -> None:
        payload = dict(details)
        if field is not None:
            payload["field"] = field
        super().__init__(message, details=payload)
        self.field = field


class EvidenceDecodeError(DeserializationError):
    """Evidence payload could not be decoded; ``cause`` holds the diagnostic."""

    kind = ErrorKind.EVIDENCE_DECODE

    def __init__(self, message: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(message, field="evidence", cause=str(cause) if cause else None)
        self.cause = cause


class InvalidEvidenceError(LiteClientError):
    """Decoded evidence does not prove a duplicate vote."""

    kind = ErrorKind.INVALID_EVIDENCE


class TagError(StructuralError):
    kind = ErrorKind.INVALID_TAG


# ==================== Hash Mismatch Errors ====================


class HashMismatchError(LiteClientError):
    """Raised when a hash binding between two values does not hold."""


class HeaderCommitMismatchError(HashMismatchError):
    """commit.block_id does not commit to the supplied header."""

    kind = ErrorKind.HEADER_COMMIT_MISMATCH


class ValidatorSetMismatchError(HashMismatchError):
    """header.validators_hash does not match the supplied validator set."""

    kind = ErrorKind.VALIDATOR_SET_MISMATCH


class ChainIdMismatchError(HashMismatchError):
    kind = ErrorKind.CHAIN_ID_MISMATCH


# ==================== Voting Power Errors ====================


class InsufficientPowerError(LiteClientError):
    """Raised when signatures do not carry enough voting power."""

    def __init__(self, message: str, tallied: int, total: int, threshold: str) -> None:
        super().__init__(
            message,
            details={"tallied": tallied, "total": total, "threshold": threshold},
        )
        self.tallied = tallied
        self.total = total
        self.threshold = threshold


class InsufficientTrustedPowerError(InsufficientPowerError):
    """Trusted next validators do not certify the candidate."""

    kind = ErrorKind.INSUFFICIENT_TRUSTED_POWER


class InsufficientNewPowerError(InsufficientPowerError):
    """Candidate validators do not reach the consensus threshold on their own commit."""

    kind = ErrorKind.INSUFFICIENT_NEW_POWER


# ==================== Temporal Errors ====================


class ExpiredError(LiteClientError):
    """Trusted state is older than the trusting period."""

    kind = ErrorKind.EXPIRED


class NonIncreasingHeightError(LiteClientError):
    """Candidate height is not above the trusted height."""

    kind = ErrorKind.NON_INCREASING_HEIGHT

    def __init__(self, trusted_height: int, candidate_height: int) -> None:
        super().__init__(
            f"Candidate height {candidate_height} must be greater than trusted height {trusted_height}",
            details={"trusted_height": trusted_height, "candidate_height": candidate_height},
        )
        self.trusted_height = trusted_height
        self.candidate_height = candidate_height
