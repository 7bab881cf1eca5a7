"""
DB Controller - Configuration

Two layers of configuration:
- RunConfiguration: the per-experiment JSON file (target database, upload endpoint),
  schema-validated and loaded by ConfigLoader
- ControllerSettings: process settings loaded from environment variables
"""

import json
import os
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Union

from .errors import ConfigValidationError, SchemaValidationError
from .models import DatabaseType, parse_database_url
from .schema import JSONSchemaType, validate_document

logger = logging.getLogger(__name__)

# Default observation period (5 minutes)
DEFAULT_OBSERVATION_SECONDS = 300

# Default base directory for result files
DEFAULT_OUTPUT_DIRECTORY = "output"


@dataclass(frozen=True)
class RunConfiguration:
    """
    Immutable configuration for one experiment.

    Only ConfigLoader builds these, from input that already passed the
    configuration schema.
    """

    database_type: DatabaseType
    username: str
    password: str
    database_url: str
    upload_code: str
    upload_url: str
    workload_name: str

    @property
    def database_name(self) -> str:
        """Name of the per-database output directory."""
        return self.database_type.value

    def __str__(self) -> str:
        """String representation with masked secrets."""
        return (
            f"RunConfiguration("
            f"database_type={self.database_type.value}, "
            f"username={self.username}, "
            f"password=***REDACTED***, "
            f"database_url={self.database_url}, "
            f"upload_code=***REDACTED***, "
            f"upload_url={self.upload_url}, "
            f"workload_name={self.workload_name})"
        )

    __repr__ = __str__


class ConfigLoader:
    """Load and validate the run configuration file."""

    def __init__(self, config_path: Union[str, Path]):
        self.config_path = Path(config_path)

    def load(self) -> RunConfiguration:
        """
        Read, validate and parse the configuration file.

        Returns:
            RunConfiguration

        Raises:
            ConfigValidationError: File unreadable, not JSON, or not schema-conformant
            UnsupportedDatabaseError: database_type names no known engine
        """
        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                raw = f.read()
        except (OSError, UnicodeDecodeError) as e:
            raise ConfigValidationError(
                f"Cannot read configuration file {self.config_path}: {e}"
            ) from e

        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigValidationError(
                f"Configuration file is not valid JSON ({self.config_path}): {e}"
            ) from e

        config = self.parse(data)
        logger.info(f"Loaded configuration: {config}")
        return config

    @staticmethod
    def parse(data: Dict[str, Any]) -> RunConfiguration:
        """
        Validate a raw configuration object and build a RunConfiguration.

        Validation runs before any field is read; nothing is defaulted.
        """
        try:
            validate_document(JSONSchemaType.CONFIG, data)
        except SchemaValidationError as e:
            raise ConfigValidationError(f"Invalid configuration JSON format: {e}") from e

        # Port is only checked for syntax here; each collector supplies its own default
        try:
            parse_database_url(data["database_url"], default_port=0)
        except ValueError as e:
            raise ConfigValidationError(str(e)) from e

        return RunConfiguration(
            database_type=DatabaseType.parse(data["database_type"]),
            username=data["username"],
            password=data["password"],
            database_url=data["database_url"],
            upload_code=data["upload_code"],
            upload_url=data["upload_url"],
            workload_name=data["workload_name"],
        )


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning(f"Ignoring invalid {name}={raw!r}, using default {default}")
        return default


@dataclass
class ControllerSettings:
    """
    Process-level settings for the controller.

    Environment variables:
        DBCONTROLLER_LOG_LEVEL: Log level (default: INFO)
        DBCONTROLLER_LOG_FORMAT: "text" or "json" (default: text)
        DBCONTROLLER_UPLOAD_TIMEOUT: Upload request timeout in seconds (default: 30)
        DBCONTROLLER_UPLOAD_MAX_RETRIES: Upload attempts for transient errors (default: 3)
        DBCONTROLLER_UPLOAD_RETRY_DELAY: Delay between upload attempts (default: 1.0)
        DBCONTROLLER_CONNECT_TIMEOUT: Database connect timeout in seconds (default: 10)
    """

    log_level: str = "INFO"
    log_format: str = "text"
    upload_timeout: float = 30.0
    upload_max_retries: int = 3
    upload_retry_delay: float = 1.0
    connect_timeout: int = 10

    @classmethod
    def from_env(cls) -> "ControllerSettings":
        return cls(
            log_level=os.getenv("DBCONTROLLER_LOG_LEVEL", "INFO").upper(),
            log_format=os.getenv("DBCONTROLLER_LOG_FORMAT", "text").lower(),
            upload_timeout=_env_number("DBCONTROLLER_UPLOAD_TIMEOUT", 30.0, float),
            upload_max_retries=_env_number("DBCONTROLLER_UPLOAD_MAX_RETRIES", 3, int),
            upload_retry_delay=_env_number("DBCONTROLLER_UPLOAD_RETRY_DELAY", 1.0, float),
            connect_timeout=_env_number("DBCONTROLLER_CONNECT_TIMEOUT", 10, int),
        )

    def validate(self) -> tuple[bool, list[str]]:
        """
        Validate settings.

        Returns:
            Tuple of (is_valid: bool, errors: list[str])
        """
        errors = []

        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            errors.append(f"Unknown log level: {self.log_level}")
        if self.log_format not in ("text", "json"):
            errors.append(f"Unknown log format: {self.log_format} (expected text or json)")
        if self.upload_timeout <= 0:
            errors.append(f"Upload timeout must be positive, got {self.upload_timeout}")
        if self.upload_max_retries < 1:
            errors.append(f"Upload retries must be at least 1, got {self.upload_max_retries}")
        if self.upload_retry_delay < 0:
            errors.append(f"Upload retry delay must not be negative, got {self.upload_retry_delay}")
        if self.connect_timeout <= 0:
            errors.append(f"Connect timeout must be positive, got {self.connect_timeout}")

        return len(errors) == 0, errors
