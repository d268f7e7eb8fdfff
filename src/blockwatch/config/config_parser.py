"""Configuration parsing for blockwatch.

Brief:
  Reads an optional YAML config file and validates it into typed pydantic
  models. Every section is optional; omitted keys take their defaults.

Inputs:
  - Path to a YAML file, or None for defaults.

Outputs:
  - BlockwatchConfig instance.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..history import DEFAULT_CAPACITY
from ..snapshot import BLOCKED_MARKER

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised when a config file cannot be read or fails validation."""


class LoggingConfig(BaseModel):
    """Brief: Logging options consumed by init_logging.

    Inputs:
      - level: debug, info, warn, error or crit. Unknown names fall back to info.
      - stderr: Attach a stderr handler (default True).
      - file: Optional path of a log file to append to.
    """

    level: str = Field(default="info")
    stderr: bool = Field(default=True)
    file: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class HistoryConfig(BaseModel):
    """Brief: Snapshot history sizing and blocked-reason policy."""

    capacity: int = Field(default=DEFAULT_CAPACITY, ge=1)
    blocked_marker: str = Field(default=BLOCKED_MARKER, min_length=1)

    model_config = ConfigDict(extra="forbid")


class PollerConfig(BaseModel):
    interval_seconds: float = Field(default=10.0, ge=1.0)

    model_config = ConfigDict(extra="forbid")


class BlockwatchConfig(BaseModel):
    """Brief: Root configuration model.

    Inputs:
      - logging: LoggingConfig section.
      - history: HistoryConfig section.
      - poller: PollerConfig section.

    Outputs:
      - BlockwatchConfig instance with defaults filled in.

    Example:
      >>> BlockwatchConfig().history.capacity
      30
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    poller: PollerConfig = Field(default_factory=PollerConfig)

    model_config = ConfigDict(extra="forbid")


def parse_config_dict(
    raw: Any, *, config_path: Optional[str] = None
) -> BlockwatchConfig:
    """Brief: Validate an already-loaded YAML document.

    Inputs:
      - raw: Parsed YAML (None is treated as an empty mapping).
      - config_path: Optional path used in error messages.

    Outputs:
      - BlockwatchConfig.

    Raises:
      - ConfigError: When the root is not a mapping or validation fails.
    """

    where = config_path or "<config>"
    data: Dict[str, Any] = {} if raw is None else raw
    if not isinstance(data, dict):
        raise ConfigError(f"{where}: configuration root must be a mapping")

    # YAML "section:" with no body parses as None; treat it as an empty section.
    cleaned = {k: ({} if v is None else v) for k, v in data.items()}

    try:
        return BlockwatchConfig(**cleaned)
    except ValidationError as exc:
        raise ConfigError(f"{where}: invalid configuration:\n{exc}") from exc


def load_config(config_path: Optional[str] = None) -> BlockwatchConfig:
    """Brief: Read and validate a YAML config file.

    Inputs:
      - config_path: Path to the YAML file, or None to use defaults.

    Outputs:
      - BlockwatchConfig.

    Raises:
      - ConfigError: When the file is unreadable, is not valid YAML, or fails
        validation.
    """

    if config_path is None:
        return BlockwatchConfig()

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except OSError as exc:
        raise ConfigError(f"{config_path}: cannot read config: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigError(f"{config_path}: invalid YAML: {exc}") from exc

    cfg = parse_config_dict(raw, config_path=config_path)
    logger.debug("Loaded config from %s", config_path)
    return cfg
