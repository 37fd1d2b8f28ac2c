"""Configuration loader with validation."""

import hashlib
import time
from pathlib import Path

import structlog
import yaml
from pydantic import ValidationError

from invokehttp.config.schemas import InvokeHttpConfig
from invokehttp.config.settings import InvokeHttpSettings, get_settings
from invokehttp.errors import InvokeHttpError


logger = structlog.get_logger()


class ConfigValidationError(InvokeHttpError):
    """Raised when configuration validation fails."""

    def __init__(self, errors: list[dict[str, str]], file_path: str) -> None:
        """Initialize the error.

        Args:
            errors: List of validation error details.
            file_path: Path to the file that failed validation.
        """
        self.errors = errors
        self.file_path = file_path
        super().__init__(f"Validation failed for {file_path}: {len(errors)} errors")


class ConfigLoader:
    """Loads and validates an invokehttp configuration file."""

    def __init__(self, settings: InvokeHttpSettings | None = None) -> None:
        """Initialize the loader.

        Args:
            settings: Environment secrets; read from the environment if omitted.
        """
        self._settings = settings
        self._checksum: str | None = None

    @property
    def checksum(self) -> str | None:
        """SHA-256 checksum of the last loaded file."""
        return self._checksum

    def load(self, config_path: Path) -> InvokeHttpConfig:
        """Load and validate a YAML configuration file.

        Args:
            config_path: Path to the YAML file.

        Returns:
            Validated configuration record.

        Raises:
            ConfigValidationError: If the file cannot be parsed or validated.
        """
        start_time = time.perf_counter()
        log = logger.bind(component="config", file_path=str(config_path))

        try:
            content_bytes = config_path.read_bytes()
            parsed = yaml.safe_load(content_bytes.decode("utf-8")) or {}
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as e:
            errors = [{"loc": "", "msg": str(e), "type": type(e).__name__}]
            log.error("config_load_failed", error=str(e))
            raise ConfigValidationError(errors, str(config_path)) from e

        if not isinstance(parsed, dict):
            errors = [
                {"loc": "", "msg": "Top level must be a mapping", "type": "type_error"}
            ]
            raise ConfigValidationError(errors, str(config_path))

        self._checksum = hashlib.sha256(content_bytes).hexdigest()
        settings = self._settings if self._settings is not None else get_settings()

        try:
            config = InvokeHttpConfig.model_validate(settings.apply(parsed))
        except ValidationError as e:
            errors = [
                {
                    "loc": ".".join(str(part) for part in err["loc"]),
                    "msg": err["msg"],
                    "type": err["type"],
                }
                for err in e.errors()
            ]
            log.error("config_validation_failed", error_count=len(errors))
            raise ConfigValidationError(errors, str(config_path)) from e

        log.info(
            "config_loaded",
            checksum=self._checksum,
            duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
        )
        return config
