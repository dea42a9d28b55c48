"""
XAI Light Configuration

Verification parameters are read from environment variables and handed to
the verifier explicitly. Nothing here is consulted implicitly at call time.

Environment:
- XAI_LIGHT_CHAIN_ID: expected chain id (optional)
- XAI_LIGHT_TRUSTING_PERIOD_SECONDS: trusting period, default two weeks
- XAI_LIGHT_TRUST_THRESHOLD: fraction such as "1/3" or "2/3"
- XAI_LIGHT_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR or CRITICAL
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Mapping, Optional

from xai_light.core.lite_exceptions import InvalidTrustThresholdError
from xai_light.lite.trust import ONE_THIRD, TrustThreshold

logger = logging.getLogger(__name__)

DEFAULT_TRUSTING_PERIOD = timedelta(days=14)
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid."""
    pass


@dataclass(frozen=True)
class LightClientConfig:
    chain_id: Optional[str] = None
    trusting_period: timedelta = DEFAULT_TRUSTING_PERIOD
    trust_threshold: TrustThreshold = field(default=ONE_THIRD)
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        if self.trusting_period <= timedelta(0):
            raise ConfigurationError("Trusting period must be positive.")
        if self.log_level not in LOG_LEVELS:
            raise ConfigurationError(f"Unknown log level: {self.log_level}")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "LightClientConfig":
        env = os.environ if environ is None else environ

        chain_id = env.get("XAI_LIGHT_CHAIN_ID", "").strip() or None

        raw_period = env.get("XAI_LIGHT_TRUSTING_PERIOD_SECONDS", "").strip()
        if raw_period:
            try:
                seconds = int(raw_period)
            except ValueError as exc:
                raise ConfigurationError(
                    f"XAI_LIGHT_TRUSTING_PERIOD_SECONDS must be an integer, got {raw_period!r}"
                ) from exc
            if seconds <= 0:
                raise ConfigurationError("XAI_LIGHT_TRUSTING_PERIOD_SECONDS must be positive.")
            trusting_period = timedelta(seconds=seconds)
        else:
            trusting_period = DEFAULT_TRUSTING_PERIOD

        raw_threshold = env.get("XAI_LIGHT_TRUST_THRESHOLD", "").strip()
        if raw_threshold:
            try:
                trust_threshold = TrustThreshold.parse(raw_threshold)
            except InvalidTrustThresholdError as exc:
                raise ConfigurationError(f"XAI_LIGHT_TRUST_THRESHOLD: {exc.message}") from exc
        else:
            trust_threshold = ONE_THIRD

        log_level = env.get("XAI_LIGHT_LOG_LEVEL", "INFO").strip().upper()
        if log_level == "WARN":
            log_level = "WARNING"

        config = cls(
            chain_id=chain_id,
            trusting_period=trusting_period,
            trust_threshold=trust_threshold,
            log_level=log_level,
        )
        logger.debug(
            "Light client configuration loaded",
            extra={
                "event": "config.loaded",
                "trusting_period_seconds": int(trusting_period.total_seconds()),
                "trust_threshold": str(trust_threshold),
            },
        )
        return config
