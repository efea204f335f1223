"""Configuration module — frozen dataclasses loaded from environment variables or YAML."""

import logging
import os
from dataclasses import dataclass, field
from datetime import timedelta

import yaml

logger = logging.getLogger(__name__)

DEFAULT_LOG_DIR = "./log"
DEFAULT_LOG_FILENAME = "log.log"
DEFAULT_MAX_FILE_SIZE_BYTES = 1_000_000
DEFAULT_CONFIG_PATH = "./config.yml"

MODES = ("console", "file", "both", "container")


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in ("true", "1", "yes")


def _parse_int(name: str, raw: str | None) -> int | None:
    """Parse an integer env value; bad values are logged and ignored."""
    if raw is None or raw.strip() == "":
        return None
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer", name, raw)
        return None


@dataclass(frozen=True)
class FileWriterConfig:
    log_dir: str = DEFAULT_LOG_DIR
    log_filename: str = DEFAULT_LOG_FILENAME
    max_file_size_bytes: int = 0  # 0 -> DEFAULT_MAX_FILE_SIZE_BYTES
    max_age: timedelta = timedelta(0)  # 0 -> keep forever
    compression_enabled: bool = True

    def __post_init__(self):
        if self.max_file_size_bytes < 0:
            raise ValueError(f"max_file_size_bytes must be >= 0, got {self.max_file_size_bytes}")
        if self.max_age < timedelta(0):
            raise ValueError(f"max_age must be >= 0, got {self.max_age}")
        if self.max_file_size_bytes == 0:
            object.__setattr__(self, "max_file_size_bytes", DEFAULT_MAX_FILE_SIZE_BYTES)
        if not self.log_dir:
            object.__setattr__(self, "log_dir", DEFAULT_LOG_DIR)
        if not self.log_filename:
            object.__setattr__(self, "log_filename", DEFAULT_LOG_FILENAME)

    @property
    def log_path(self) -> str:
        return os.path.join(self.log_dir, self.log_filename)

    @classmethod
    def from_dict(cls, d: dict) -> "FileWriterConfig":
        return cls(
            log_dir=d.get("log_dir", DEFAULT_LOG_DIR),
            log_filename=d.get("log_filename", DEFAULT_LOG_FILENAME),
            max_file_size_bytes=int(d.get("max_file_size_bytes", 0)),
            max_age=timedelta(days=d.get("max_age_days", 0)),
            compression_enabled=bool(d.get("compression_enabled", True)),
        )


@dataclass(frozen=True)
class LoggingConfig:
    mode: str = "console"
    level: str = "INFO"
    file_writer: FileWriterConfig = field(default_factory=FileWriterConfig)

    def __post_init__(self):
        mode = (self.mode or "").strip().lower()
        object.__setattr__(self, "mode", mode if mode in MODES else "console")
        object.__setattr__(self, "level", (self.level or "INFO").strip().upper())

    @property
    def uses_file(self) -> bool:
        return self.mode in ("file", "both")

    @classmethod
    def from_dict(cls, d: dict) -> "LoggingConfig":
        return cls(
            mode=d.get("mode", "console"),
            level=d.get("level", "INFO"),
            file_writer=FileWriterConfig.from_dict(d.get("file_writer") or {}),
        )


def load_config() -> LoggingConfig:
    """Build LoggingConfig from environment variables with sensible defaults."""
    # MAX_FILE_SIZE_BYTES takes precedence over LOG_FILE_SIZE_MB
    max_size = _parse_int("MAX_FILE_SIZE_BYTES", os.environ.get("MAX_FILE_SIZE_BYTES"))
    if max_size is None:
        size_mb = _parse_int("LOG_FILE_SIZE_MB", os.environ.get("LOG_FILE_SIZE_MB"))
        max_size = size_mb * 1024 * 1024 if size_mb is not None else 0

    max_age_days = _parse_int("LOG_FILE_MAX_AGE_DAYS", os.environ.get("LOG_FILE_MAX_AGE_DAYS"))

    return LoggingConfig(
        mode=os.environ.get("LOGGER_MODE", "console"),
        level=os.environ.get("LOG_LEVEL", "INFO"),
        file_writer=FileWriterConfig(
            log_dir=os.environ.get("LOG_DIR", DEFAULT_LOG_DIR),
            log_filename=os.environ.get("LOG_FILENAME", DEFAULT_LOG_FILENAME),
            max_file_size_bytes=max(max_size, 0),
            max_age=timedelta(days=max(max_age_days or 0, 0)),
            compression_enabled=_parse_bool(
                os.environ.get("COMPRESSION_ENABLED", "true")
            ),
        ),
    )


def load_config_file(path: str = DEFAULT_CONFIG_PATH) -> LoggingConfig:
    """Load LoggingConfig from the YAML file at *path*.

    The path can be overridden via the ``CONFIG_PATH`` environment variable.
    """
    path = os.environ.get("CONFIG_PATH", path)
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    return LoggingConfig.from_dict(data)
