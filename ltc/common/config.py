"""
Environment configuration for the lattice CLI.

This module uses Pydantic Settings for environment-based configuration.
Configuration is organized into two sections:
- CLI settings (config home directory, polling timeout)
- Logging settings

The CLI settings keep the historical ``LATTICE_CLI_`` variable names
(``LATTICE_CLI_HOME``, ``LATTICE_CLI_TIMEOUT``); logging knobs use the
``LTC_`` prefix (e.g. ``LTC_LOG_LEVEL``). Both are read once at startup.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from rich.console import Console
from rich.logging import RichHandler

DEFAULT_TIMEOUT_SECONDS = 60
CONFIG_DIR_NAME = ".lattice"
CONFIG_FILE_NAME = "config.json"


class CliSettings(BaseSettings):
    """
    Settings read from the invoking environment.

    Parameters
    ----------
    home : Path, optional
        Directory holding the ``.lattice`` config directory (default: user home)
    timeout : int
        Seconds to wait for an app to start or scale

    Environment Variables
    ---------------------
    LATTICE_CLI_HOME : str
        Override the config home directory
    LATTICE_CLI_TIMEOUT : int
        Override the polling timeout (non-integers fall back to the default)

    Examples
    --------
    >>> settings = CliSettings()
    >>> settings.timeout
    60
    >>> CliSettings(timeout="not-a-number").timeout
    60
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
        extra="ignore",
        env_prefix="LATTICE_CLI_",
    )

    home: Path | None = Field(None, description="Config home directory")
    timeout: int = Field(default=DEFAULT_TIMEOUT_SECONDS, description="Polling timeout (s)")

    @field_validator("home", mode="before")
    @classmethod
    def empty_home_means_default(cls, v: Any) -> Any:
        """Treat an empty LATTICE_CLI_HOME as unset."""
        if v == "":
            return None
        return v

    @field_validator("timeout", mode="before")
    @classmethod
    def lenient_timeout(cls, v: Any) -> int:
        """Fall back to the default when the timeout is not an integer."""
        try:
            return int(v)
        except (TypeError, ValueError):
            return DEFAULT_TIMEOUT_SECONDS

    @property
    def config_dir(self) -> Path:
        """Directory holding the persisted target config."""
        base = self.home if self.home is not None else Path.home()
        return base / CONFIG_DIR_NAME

    @property
    def config_path(self) -> Path:
        """Full path of the persisted target config file."""
        return self.config_dir / CONFIG_FILE_NAME


class LoggingSettings(BaseSettings):
    """
    Logging configuration.

    Parameters
    ----------
    log_level : str
        Logging level ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
    log_format : str
        Log format ("json", "console")
    log_file : Path, optional
        Log file path (None for stderr only)

    Environment Variables
    ---------------------
    LTC_LOG_LEVEL : str
        Logging level
    LTC_LOG_FORMAT : str
        Log format
    LTC_LOG_FILE : str
        Log file path

    Examples
    --------
    >>> config = LoggingSettings()
    >>> config.log_level
    'WARNING'
    >>> config.log_format
    'console'
    """

    model_config = SettingsConfigDict(
        case_sensitive=False,
        extra="ignore",
        env_prefix="LTC_",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Logging level",
    )
    log_format: Literal["json", "console"] = Field(
        default="console",
        description="Log format",
    )
    log_file: Path | None = Field(None, description="Log file path")


# =============================================================================
# Convenience functions
# =============================================================================


class JsonLogFormatter(logging.Formatter):
    """Render log records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["error"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def setup_logging(settings: LoggingSettings | None = None, debug: bool = False) -> logging.Handler:
    """
    Configure the root logger for a CLI run.

    Log output goes to stderr (or the configured file) so it never mixes
    with the in-place redraws the CLI performs on stdout.

    Parameters
    ----------
    settings : LoggingSettings, optional
        Logging settings (default: read from the environment)
    debug : bool
        Force DEBUG level regardless of the settings

    Returns
    -------
    logging.Handler
        The handler installed on the root logger
    """
    settings = settings or LoggingSettings()
    level = logging.DEBUG if debug else getattr(logging, settings.log_level)

    handler: logging.Handler
    if settings.log_file is not None:
        handler = logging.FileHandler(settings.log_file)
    elif settings.log_format == "console":
        handler = RichHandler(console=Console(file=sys.stderr), show_path=False)
    else:
        handler = logging.StreamHandler(sys.stderr)

    if settings.log_format == "json":
        handler.setFormatter(JsonLogFormatter())
    elif not isinstance(handler, RichHandler):
        handler.setFormatter(logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s"))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)
    return handler
