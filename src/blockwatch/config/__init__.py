"""Configuration loading and logging setup for blockwatch."""

from .config_parser import (
    BlockwatchConfig,
    ConfigError,
    HistoryConfig,
    LoggingConfig,
    PollerConfig,
    load_config,
)
from .logging_config import init_logging

__all__ = [
    "BlockwatchConfig",
    "ConfigError",
    "HistoryConfig",
    "LoggingConfig",
    "PollerConfig",
    "init_logging",
    "load_config",
]
