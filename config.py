"""Configuration management for the Sentix sentiment dashboard.

This module provides centralized configuration for all pipeline components.
All settings are loaded from environment variables with sensible defaults.

Environment Variables:
    Required for analysis:
        GEMINI_API_KEY: Google Gemini API key for the classifier

    Classifier:
        CLASSIFIER_MODEL: PydanticAI model string (provider:model)
        REQUEST_TIMEOUT_SECONDS: Timeout for one classification call (0 = none)

    Behavior:
        LANGUAGE: Prompt and message language ('en' or 'es')
        MIN_TEXT_LENGTH: Minimum trimmed feedback length
        TREND_SIZE: Number of records in the dashboard confidence trend
        EXPORT_PATH: Default CSV export file

    Optional Features:
        ENABLE_LOGFIRE: Enable Logfire/OpenTelemetry tracing

    Logging:
        LOG_LEVEL: Logging verbosity (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        LOG_BACKUP_COUNT: Number of rotated log files to keep
        LOG_MAX_BYTES: Max log file size in bytes (0 = time-based rotation)
        LOG_FORMAT: Log format ('text' or 'json' for structured logging)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path

from errors import ConfigurationError

SUPPORTED_LANGUAGES = ("en", "es")
DEFAULT_CLASSIFIER_MODEL = "google-gla:gemini-3-flash-preview"


def _env(key: str, default: str = "") -> str:
    """Get string environment variable with optional default.

    Args:
        key: Environment variable name
        default: Value to return if not set

    Returns:
        Environment variable value or default
    """
    return os.environ.get(key, default)


def _env_int(key: str, default: int) -> int:
    """Get integer environment variable with default.

    Raises:
        ValueError: If value is set but cannot be parsed as integer
    """
    val = os.environ.get(key)
    if not val:
        return default
    try:
        return int(val)
    except ValueError:
        raise ValueError(f"Invalid integer value for {key}: '{val}'")


def _env_float(key: str, default: float) -> float:
    """Get float environment variable with default.

    Raises:
        ValueError: If value is set but cannot be parsed as float
    """
    val = os.environ.get(key)
    if not val:
        return default
    try:
        return float(val)
    except ValueError:
        raise ValueError(f"Invalid float value for {key}: '{val}'")


def _env_bool(key: str, default: bool = False) -> bool:
    """Get boolean environment variable with default.

    Recognizes truthy values: '1', 'true', 'yes', 'on'
    Recognizes falsy values: '0', 'false', 'no', 'off'
    """
    val = os.environ.get(key, "").lower()
    if val in ("1", "true", "yes", "on"):
        return True
    if val in ("0", "false", "no", "off"):
        return False
    return default


@dataclass
class Config:
    """Application configuration loaded from environment variables.

    Use Config.load() to create an instance with values from the environment.
    The API key is deliberately not part of validate(): a session can browse
    and export its history without one, and a missing key only becomes fatal
    when an analysis is attempted (see require_api_key()).

    Example:
        >>> config = Config.load()
        >>> if error := config.validate():
        ...     print(f"Config error: {error}")
    """

    # === Credential ===
    gemini_api_key: str = ""  # GEMINI_API_KEY - Google AI API key

    # === Classifier ===
    # PydanticAI format: provider:model (e.g., 'google-gla:gemini-3-flash-preview')
    classifier_model: str = DEFAULT_CLASSIFIER_MODEL
    request_timeout: float = 30.0  # REQUEST_TIMEOUT_SECONDS - 0 disables the timeout

    # === Behavior ===
    language: str = "en"  # LANGUAGE - 'en' (English) or 'es' (Spanish)
    min_text_length: int = 5  # MIN_TEXT_LENGTH - Validation gate on trimmed text
    trend_size: int = 10  # TREND_SIZE - Records shown in the confidence trend
    export_path: Path = field(default_factory=lambda: Path("sentix_export.csv"))  # EXPORT_PATH

    # === Output Directories ===
    log_dir: Path = field(default_factory=lambda: Path("log"))  # LOG_DIR

    # === Logging Configuration ===
    log_level: str = "INFO"  # LOG_LEVEL - DEBUG, INFO, WARNING, ERROR
    log_backup_count: int = 30  # LOG_BACKUP_COUNT - Number of rotated logs to keep
    log_max_bytes: int = 0  # LOG_MAX_BYTES - Max file size (0 = time-based rotation)
    log_format: str = "text"  # LOG_FORMAT - 'text' or 'json' for structured logging

    # === Optional: Observability ===
    # Requires: pip install logfire
    enable_logfire: bool = False  # ENABLE_LOGFIRE - Enable distributed tracing
    logfire_token: str = ""  # LOGFIRE_TOKEN - Authentication token

    @classmethod
    def load(cls) -> "Config":
        """Load configuration from environment variables."""
        return cls(
            gemini_api_key=_env("GEMINI_API_KEY"),
            classifier_model=_env("CLASSIFIER_MODEL", DEFAULT_CLASSIFIER_MODEL),
            request_timeout=_env_float("REQUEST_TIMEOUT_SECONDS", 30.0),
            language=_env("LANGUAGE", "en").lower(),
            min_text_length=_env_int("MIN_TEXT_LENGTH", 5),
            trend_size=_env_int("TREND_SIZE", 10),
            export_path=Path(_env("EXPORT_PATH", "sentix_export.csv")),
            log_dir=Path(_env("LOG_DIR", "log")),
            enable_logfire=_env_bool("ENABLE_LOGFIRE", False),
            logfire_token=_env("LOGFIRE_TOKEN"),
            log_level=_env("LOG_LEVEL", "INFO").upper(),
            log_backup_count=_env_int("LOG_BACKUP_COUNT", 30),
            log_max_bytes=_env_int("LOG_MAX_BYTES", 0),
            log_format=_env("LOG_FORMAT", "text").lower(),
        )

    def validate(self) -> str | None:
        """Validate configuration values.

        Returns:
            Error message string if invalid, None if valid.
        """
        if not self.classifier_model:
            return "CLASSIFIER_MODEL must not be empty"
        provider, _, model_name = self.classifier_model.partition(":")
        if (
            provider not in ("google-gla", "openai")
            or not model_name
            or (provider == "openai" and "@" not in model_name)
        ):
            return (
                f"Invalid CLASSIFIER_MODEL '{self.classifier_model}' - "
                "expected 'google-gla:<model>' or 'openai:<model>@<base_url>'"
            )
        if self.language not in SUPPORTED_LANGUAGES:
            return f"Invalid LANGUAGE '{self.language}' - must be 'en' or 'es'"
        if self.min_text_length < 1:
            return "MIN_TEXT_LENGTH must be positive"
        if self.request_timeout < 0:
            return "REQUEST_TIMEOUT_SECONDS must be non-negative"
        if self.trend_size <= 0:
            return "TREND_SIZE must be positive"
        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            return f"Invalid LOG_LEVEL '{self.log_level}' - must be DEBUG, INFO, WARNING, ERROR, or CRITICAL"
        if self.log_format not in ("text", "json"):
            return f"Invalid LOG_FORMAT '{self.log_format}' - must be 'text' or 'json'"
        if self.log_backup_count < 0:
            return "LOG_BACKUP_COUNT must be non-negative"
        if self.log_max_bytes < 0:
            return "LOG_MAX_BYTES must be non-negative"
        return None

    def require_api_key(self) -> str:
        """Return the Gemini API key or fail.

        Raises:
            ConfigurationError: If GEMINI_API_KEY is not configured
        """
        if not self.gemini_api_key:
            raise ConfigurationError(
                "GEMINI_API_KEY is missing. Set it in the environment before running an analysis."
            )
        return self.gemini_api_key
