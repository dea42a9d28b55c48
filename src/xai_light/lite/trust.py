"""Trust thresholds and the voting-power predicate."""

from __future__ import annotations

from dataclasses import dataclass
from fractions import Fraction

from xai_light.core.lite_exceptions import InvalidTrustThresholdError


@dataclass(frozen=True)
class TrustThreshold:
    """Fraction of total voting power that signed power must strictly exceed.

    Valid thresholds lie in [1/3, 1]; anything below 1/3 would let a Byzantine
    minority alone certify a header.
    """

    numerator: int
    denominator: int

    def __post_init__(self) -> None:
        if isinstance(self.numerator, bool) or isinstance(self.denominator, bool):
            raise InvalidTrustThresholdError("Trust threshold terms must be integers")
        if not isinstance(self.numerator, int) or not isinstance(self.denominator, int):
            raise InvalidTrustThresholdError("Trust threshold terms must be integers")
        if self.denominator <= 0:
            raise InvalidTrustThresholdError("Trust threshold denominator must be positive")
        if self.numerator > self.denominator:
            raise InvalidTrustThresholdError(f"Trust threshold {self} is greater than 1")
        if 3 * self.numerator < self.denominator:
            raise InvalidTrustThresholdError(f"Trust threshold {self} is below 1/3")

    @classmethod
    def parse(cls, value: str) -> "TrustThreshold":
        """Parse ``"n/d"``."""
        parts = value.strip().split("/")
        if len(parts) != 2:
            raise InvalidTrustThresholdError(f"Trust threshold must look like 'n/d': {value!r}")
        try:
            numerator, denominator = int(parts[0]), int(parts[1])
        except ValueError as exc:
            raise InvalidTrustThresholdError(f"Invalid trust threshold: {value!r}") from exc
        return cls(numerator, denominator)

    def as_fraction(self) -> Fraction:
        return Fraction(self.numerator, self.denominator)

    def is_satisfied_by(self, tallied: int, total: int) -> bool:
        return has_sufficient_voting_power(tallied, total, self)

    def __str__(self) -> str:
        return f"{self.numerator}/{self.denominator}"


ONE_THIRD = TrustThreshold(1, 3)
TWO_THIRDS = TrustThreshold(2, 3)


def has_sufficient_voting_power(tallied: int, total: int, threshold: TrustThreshold) -> bool:
    """True if tallied / total strictly exceeds the threshold.

    A zero total never satisfies any threshold.
    """
    if total <= 0:
        return False
    return tallied * threshold.denominator > total * threshold.numerator
