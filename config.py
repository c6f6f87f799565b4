"""Configuration management for the Tidings newsletter service.

This module provides centralized configuration for all workflow components.
All settings are loaded from environment variables with sensible defaults.

Environment Variables:
    Required (for google-gla: models):
        GEMINI_API_KEY: Google Gemini API key for the text-generation models

    Models (PydanticAI format - provider:model, or openai:<model>@<base_url>):
        SCORER_MODEL: Model for per-article relevance scoring
        WRITER_MODEL: Model for the newsletter intro and summaries

    Pipeline:
        SCORE_BATCH_SIZE: Articles scored concurrently per batch
        SCORE_THRESHOLD: Minimum relevance score for selection
        MAX_SELECTED: Maximum articles in one newsletter
        MAX_ARTICLES_PER_SOURCE: Extraction cap per source page
        MAX_CONCURRENT_FETCHES: Source fetch pool size (0 = unbounded)
        FETCH_TIMEOUT_SECONDS: Per-source request timeout

    Durability:
        DB_PATH: SQLite file holding runs, step checkpoints and results
        RESULT_TTL_SECONDS: Lifetime of a stored newsletter
        STEP_MAX_ATTEMPTS: Attempts per workflow step before the run fails
        RETRY_BASE_DELAY: Base delay for exponential step backoff

    Gateway:
        HOST / PORT: HTTP bind address
        POLL_INTERVAL_SECONDS: Delay between status checks
        POLL_MAX_ATTEMPTS: Status checks before answering with a timeout

    Output:
        REPORTS_DIR: Directory for markdown newsletters (CLI)
        LOG_DIR: Directory for log files

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

DEFAULT_MODEL = "google-gla:gemini-3-flash-preview"


def _env(key: str, default: str = "") -> str:
    """Get string environment variable with optional default."""
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

    All settings can be overridden via environment variables. Use Config.load()
    to create an instance with values from the environment.

    Example:
        >>> config = Config.load()
        >>> if error := config.validate():
        ...     print(f"Config error: {error}")
    """

    # === Credentials ===
    gemini_api_key: str = ""  # GEMINI_API_KEY - Google AI API key

    # === AI Models ===
    scorer_model: str = DEFAULT_MODEL  # SCORER_MODEL - Relevance scoring
    writer_model: str = DEFAULT_MODEL  # WRITER_MODEL - Intro and summaries

    # === Token Budgets ===
    score_max_tokens: int = 150
    intro_max_tokens: int = 100
    summary_max_tokens: int = 150

    # === Pipeline ===
    score_batch_size: int = 5  # SCORE_BATCH_SIZE
    score_threshold: int = 6  # SCORE_THRESHOLD
    max_selected: int = 7  # MAX_SELECTED
    max_articles_per_source: int = 20  # MAX_ARTICLES_PER_SOURCE
    max_concurrent_fetches: int = 10  # MAX_CONCURRENT_FETCHES (0 = unbounded)
    fetch_timeout_seconds: int = 30  # FETCH_TIMEOUT_SECONDS

    # === Durability ===
    db_path: Path = field(default_factory=lambda: Path("tidings.db"))  # DB_PATH
    result_ttl_seconds: int = 3600  # RESULT_TTL_SECONDS - Newsletter retention
    step_max_attempts: int = 3  # STEP_MAX_ATTEMPTS - Attempts per workflow step
    retry_base_delay: float = 1.0  # RETRY_BASE_DELAY - Base delay for exponential backoff

    # === Gateway ===
    host: str = "127.0.0.1"  # HOST
    port: int = 8787  # PORT
    poll_interval_seconds: float = 2.0  # POLL_INTERVAL_SECONDS
    poll_max_attempts: int = 60  # POLL_MAX_ATTEMPTS

    # === Output Directories ===
    log_dir: Path = field(default_factory=lambda: Path("log"))  # LOG_DIR
    reports_dir: Path = field(default_factory=lambda: Path("reports"))  # REPORTS_DIR

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
            scorer_model=_env("SCORER_MODEL", DEFAULT_MODEL),
            writer_model=_env("WRITER_MODEL", DEFAULT_MODEL),
            score_batch_size=_env_int("SCORE_BATCH_SIZE", 5),
            score_threshold=_env_int("SCORE_THRESHOLD", 6),
            max_selected=_env_int("MAX_SELECTED", 7),
            max_articles_per_source=_env_int("MAX_ARTICLES_PER_SOURCE", 20),
            max_concurrent_fetches=_env_int("MAX_CONCURRENT_FETCHES", 10),
            fetch_timeout_seconds=_env_int("FETCH_TIMEOUT_SECONDS", 30),
            db_path=Path(_env("DB_PATH", "tidings.db")),
            result_ttl_seconds=_env_int("RESULT_TTL_SECONDS", 3600),
            step_max_attempts=_env_int("STEP_MAX_ATTEMPTS", 3),
            retry_base_delay=_env_float("RETRY_BASE_DELAY", 1.0),
            host=_env("HOST", "127.0.0.1"),
            port=_env_int("PORT", 8787),
            poll_interval_seconds=_env_float("POLL_INTERVAL_SECONDS", 2.0),
            poll_max_attempts=_env_int("POLL_MAX_ATTEMPTS", 60),
            log_dir=Path(_env("LOG_DIR", "log")),
            reports_dir=Path(_env("REPORTS_DIR", "reports")),
            enable_logfire=_env_bool("ENABLE_LOGFIRE", False),
            logfire_token=_env("LOGFIRE_TOKEN"),
            log_level=_env("LOG_LEVEL", "INFO").upper(),
            log_backup_count=_env_int("LOG_BACKUP_COUNT", 30),
            log_max_bytes=_env_int("LOG_MAX_BYTES", 0),
            log_format=_env("LOG_FORMAT", "text").lower(),
        )

    def validate(self) -> str | None:
        """Validate configuration for required fields and valid values.

        Checks:
            - GEMINI_API_KEY is set when a google-gla model is configured
            - Batch, selection and polling values are positive
            - Logging settings are recognized

        Returns:
            Error message string if invalid, None if valid.
        """
        uses_gemini = any(
            m.startswith("google-gla:") for m in (self.scorer_model, self.writer_model)
        )
        if uses_gemini and not self.gemini_api_key:
            return "GEMINI_API_KEY environment variable is required"
        if self.score_batch_size <= 0:
            return "SCORE_BATCH_SIZE must be positive"
        if not 1 <= self.score_threshold <= 10:
            return "SCORE_THRESHOLD must be between 1 and 10"
        if self.max_selected <= 0:
            return "MAX_SELECTED must be positive"
        if self.max_articles_per_source <= 0:
            return "MAX_ARTICLES_PER_SOURCE must be positive"
        if self.max_concurrent_fetches < 0:
            return "MAX_CONCURRENT_FETCHES must be non-negative"
        if self.result_ttl_seconds <= 0:
            return "RESULT_TTL_SECONDS must be positive"
        if self.step_max_attempts <= 0:
            return "STEP_MAX_ATTEMPTS must be positive"
        if self.poll_interval_seconds < 0:
            return "POLL_INTERVAL_SECONDS must be non-negative"
        if self.poll_max_attempts <= 0:
            return "POLL_MAX_ATTEMPTS must be positive"
        if self.log_level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            return f"Invalid LOG_LEVEL '{self.log_level}' - must be DEBUG, INFO, WARNING, ERROR, or CRITICAL"
        if self.log_format not in ("text", "json"):
            return f"Invalid LOG_FORMAT '{self.log_format}' - must be 'text' or 'json'"
        if self.log_backup_count < 0:
            return "LOG_BACKUP_COUNT must be non-negative"
        if self.log_max_bytes < 0:
            return "LOG_MAX_BYTES must be non-negative"
        return None
