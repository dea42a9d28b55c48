"""
XAI Light - Structured Logging

Structured logging for the verification core:
- JSON log format for easy parsing
- Keyword fields attached to every record
- Contextual logging with correlation IDs
- Optional daily file rotation when a log directory is configured

The core performs no I/O on its own. Records propagate to whatever handlers
the embedding client installs unless ``log_dir`` is supplied.
"""

import hashlib
import json
import logging
import os
import threading
import time
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import TimedRotatingFileHandler
from typing import Any, Dict, Optional


# Context variable for correlation ID (thread-safe)
correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class JSONFormatter(logging.Formatter):
    """
    Formatter that outputs logs in JSON format

    Features:
    - UTC timestamps
    - Correlation ID support
    - Custom fields from the ``extra_fields`` attribute
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        corr_id = correlation_id.get()
        if corr_id:
            log_entry["correlation_id"] = corr_id

        log_entry["thread"] = {"id": threading.get_ident(), "name": threading.current_thread().name}

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info),
            }

        if hasattr(record, "extra_fields"):
            log_entry.update(record.extra_fields)

        return json.dumps(log_entry, default=str)


class StructuredLogger:
    """
    Structured logger accepting keyword fields

    Usage:
        logger = get_structured_logger("xai_light.lite")
        logger.info("Header verified", height=12, chain_id="test-chain")
    """

    def __init__(
        self,
        name: str = "xai_light",
        log_dir: Optional[str] = None,
        log_level: str = "INFO",
        backup_count: int = 30,
    ):
        """
        Initialize structured logger

        Args:
            name: Logger name
            log_dir: Directory for rotated JSON log files (no file output if None)
            log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            backup_count: Number of rotated files to keep
        """
        level = log_level.upper()
        if level == "WARN":
            level = "WARNING"
        if level not in LEVELS:
            raise ValueError(f"Unknown log level: {log_level}")

        self.name = name
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level))

        if log_dir is not None and not self.logger.handlers:
            os.makedirs(log_dir, exist_ok=True)
            json_log_path = os.path.join(log_dir, f"{name.lower()}.json.log")
            json_handler = TimedRotatingFileHandler(
                json_log_path,
                when="midnight",
                interval=1,
                backupCount=backup_count,
                encoding="utf-8",
                utc=True,
            )
            json_handler.setFormatter(JSONFormatter())
            self.logger.addHandler(json_handler)

        self.log_counts = {level_name: 0 for level_name in LEVELS}

    def _sanitize_data(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Remove key material from log fields"""
        sensitive_keys = ["private_key", "secret", "seed"]
        sanitized = {}

        for key, value in data.items():
            if any(sensitive in key.lower() for sensitive in sensitive_keys):
                sanitized[key] = "REDACTED"
            elif isinstance(value, bytes):
                sanitized[key] = value.hex().upper()
            elif isinstance(value, dict):
                sanitized[key] = self._sanitize_data(value)
            else:
                sanitized[key] = value

        return sanitized

    def _log(self, level: str, message: str, **kwargs):
        self.log_counts[level] += 1

        if kwargs:
            kwargs = self._sanitize_data(kwargs)

        extra = {"extra_fields": kwargs} if kwargs else {}
        log_func = getattr(self.logger, level.lower())
        log_func(message, extra=extra)

    def debug(self, message: str, **kwargs):
        self._log("DEBUG", message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log("INFO", message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log("WARNING", message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log("ERROR", message, **kwargs)

    def critical(self, message: str, **kwargs):
        self._log("CRITICAL", message, **kwargs)

    def verification_event(self, outcome: str, **kwargs):
        """Log the outcome of a header verification"""
        log_func = self.info if outcome == "verified" else self.warning
        log_func(f"Verification: {outcome}", outcome=outcome, verification_event=True, **kwargs)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "log_counts": self.log_counts.copy(),
            "total_logs": sum(self.log_counts.values()),
        }


class LogContext:
    """
    Context manager for correlation ID tracking

    Usage:
        with LogContext() as ctx:
            verifier.verify_trusting(...)
    """

    def __init__(self, custom_id: Optional[str] = None):
        self.correlation_id = custom_id or self._generate_correlation_id()
        self.token = None

    def _generate_correlation_id(self) -> str:
        timestamp = str(time.time()).encode()
        thread_id = str(threading.get_ident()).encode()
        random_data = os.urandom(8)
        return hashlib.sha256(timestamp + thread_id + random_data).hexdigest()[:16]

    def __enter__(self):
        self.token = correlation_id.set(self.correlation_id)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        correlation_id.reset(self.token)


_structured_loggers: Dict[str, StructuredLogger] = {}
_registry_lock = threading.Lock()


def get_structured_logger(name: str = "xai_light", log_level: str = "INFO") -> StructuredLogger:
    """
    Get the shared structured logger for ``name``

    Args:
        name: Logger name
        log_level: Level applied when the logger is first created

    Returns:
        StructuredLogger instance
    """
    with _registry_lock:
        logger = _structured_loggers.get(name)
        if logger is None:
            logger = StructuredLogger(name, log_level=log_level)
            _structured_loggers[name] = logger
        return logger
