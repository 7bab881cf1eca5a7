"""Structured logging for the controller."""
import json
import logging
import sys
import time
from contextlib import contextmanager
from typing import Optional

PACKAGE_LOGGER = "dbcontroller"

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

logger = logging.getLogger(PACKAGE_LOGGER)


# JSON formatter for structured logging
class JSONFormatter(logging.Formatter):
    def format(self, record):
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add extra fields if present
        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def configure_logging(level: str = "INFO", json_format: bool = False, stream=None) -> logging.Logger:
    """
    Install a single stream handler on the package logger.

    Safe to call more than once; earlier handlers installed here are replaced.
    """
    handler = logging.StreamHandler(stream or sys.stderr)
    handler.setFormatter(JSONFormatter() if json_format else logging.Formatter(TEXT_FORMAT))
    handler._dbcontroller_handler = True

    for existing in list(logger.handlers):
        if getattr(existing, "_dbcontroller_handler", False):
            logger.removeHandler(existing)

    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return logger


def log_phase(phase: str, state: str, **fields):
    """Log an orchestrator phase transition with structured data."""
    logger.info(f"[{phase}] -> {state}", extra={
        "extra_fields": {
            "phase": phase,
            "state": state,
            **fields
        }
    })


def log_failure(phase: str, error_kind: str, error_message: str, **context):
    """Log the diagnostic line for a failed run."""
    logger.error(f"Experiment failed during {phase}: {error_message}", extra={
        "extra_fields": {
            "phase": phase,
            "error_kind": error_kind,
            "error_message": error_message[:500],  # Truncate long errors
            **context
        }
    })


@contextmanager
def track_duration(label: Optional[str] = None):
    """Context manager to track operation duration in milliseconds."""
    start_time = time.monotonic()
    yield lambda: (time.monotonic() - start_time) * 1000
    if label:
        logger.debug(f"{label} took {(time.monotonic() - start_time) * 1000:.1f} ms")
