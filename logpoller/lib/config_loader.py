"""YAML configuration loader for the log poller.

Example YAML (poller.yaml):
    cloudwatch_logs:
      log_group:
        - /aws/lambda/orders
        - /aws/lambda/payments
      start_position: 3600          # beginning | end | seconds back from now
      interval: 60
      prune_since_db_stream_minutes: 60
      region: ${AWS_REGION}
      retry:
        max_attempts: 5
        backoff_seconds: 1.0

Usage:
    # Command line
    logpoller run ./poller.yaml

    # Python API
    from logpoller.lib.config_loader import load_config
    config = load_config("./poller.yaml")

Every value is checked here, so an invalid configuration stops the process
before the first poll.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml

from logpoller.lib._path_utils import default_sincedb_path
from logpoller.lib.env import expand_options, load_env_file
from logpoller.lib.errors import ConfigurationError
from logpoller.lib.resilience import RetryConfig
from logpoller.lib.start_position import StartPosition, validate_start_position

logger = logging.getLogger(__name__)

__all__ = ["PollerConfig", "load_config", "load_config_from_dict"]

SECTION_NAME = "cloudwatch_logs"

DEFAULT_INTERVAL_SECONDS = 60
DEFAULT_PRUNE_MINUTES = 60


@dataclass
class PollerConfig:
    """Validated poller configuration."""

    log_group: List[str]
    log_group_prefix: bool = False
    start_position: StartPosition = "beginning"
    interval: float = DEFAULT_INTERVAL_SECONDS
    prune_since_db_stream_minutes: int = DEFAULT_PRUNE_MINUTES
    sincedb_path: Optional[Path] = None
    data_dir: Optional[Path] = None
    pin_start_position: bool = False
    region: Optional[str] = None
    profile: Optional[str] = None
    endpoint_url: Optional[str] = None
    retry: RetryConfig = field(default_factory=RetryConfig.default)

    def __post_init__(self) -> None:
        self.start_position = validate_start_position(self.start_position)
        if self.sincedb_path is None:
            self.sincedb_path = default_sincedb_path(self.log_group, data_dir=self.data_dir)
        else:
            self.sincedb_path = Path(self.sincedb_path)


def _as_bool(options: Dict[str, Any], key: str, default: bool) -> bool:
    value = options.get(key, default)
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "yes", "1"):
        return True
    if isinstance(value, str) and value.strip().lower() in ("false", "no", "0"):
        return False
    raise ConfigurationError(f"{key} must be a boolean", field=key, value=value)


def _as_number(options: Dict[str, Any], key: str, default: float, *, cast: type = float) -> Any:
    value = options.get(key, default)
    if isinstance(value, bool):
        raise ConfigurationError(f"{key} must be a number", field=key, value=value)
    try:
        number = cast(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"{key} must be a number", field=key, value=value) from None
    if number <= 0:
        raise ConfigurationError(f"{key} must be greater than zero", field=key, value=value)
    return number


def _as_group_list(options: Dict[str, Any]) -> List[str]:
    groups = options.get("log_group")
    if isinstance(groups, str):
        groups = [groups]
    if not groups or not isinstance(groups, list):
        raise ConfigurationError(
            "log_group is required",
            field="log_group",
            value=groups,
            suggestion="List one or more log group names (or prefixes).",
        )
    if not all(isinstance(g, str) and g for g in groups):
        raise ConfigurationError("log_group entries must be non-empty strings", field="log_group", value=groups)
    return list(groups)


def _optional_path(options: Dict[str, Any], key: str, config_dir: Optional[Path]) -> Optional[Path]:
    value = options.get(key)
    if not value:
        return None
    path = Path(str(value)).expanduser()
    if config_dir is not None and not path.is_absolute() and str(value).startswith(("./", "../")):
        path = config_dir / path
    return path


def load_config_from_dict(
    options: Dict[str, Any],
    config_dir: Optional[Path] = None,
) -> PollerConfig:
    """Create a PollerConfig from a parsed mapping.

    Args:
        options: Poller options, at top level or under ``cloudwatch_logs``
        config_dir: Directory of the YAML file, for "./" relative paths

    Raises:
        ConfigurationError: If configuration is invalid
    """
    if not isinstance(options, dict):
        raise ConfigurationError("Configuration must be a mapping")
    if SECTION_NAME in options:
        options = options[SECTION_NAME] or {}
        if not isinstance(options, dict):
            raise ConfigurationError(f"{SECTION_NAME} must be a mapping", field=SECTION_NAME)

    options = expand_options(options)

    retry_options = options.get("retry") or {}
    if not isinstance(retry_options, dict):
        raise ConfigurationError("retry must be a mapping", field="retry", value=retry_options)
    try:
        retry = RetryConfig.from_dict(retry_options)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(str(exc), field="retry") from exc

    return PollerConfig(
        log_group=_as_group_list(options),
        log_group_prefix=_as_bool(options, "log_group_prefix", False),
        start_position=options.get("start_position", "beginning"),
        interval=_as_number(options, "interval", DEFAULT_INTERVAL_SECONDS),
        prune_since_db_stream_minutes=_as_number(
            options, "prune_since_db_stream_minutes", DEFAULT_PRUNE_MINUTES, cast=int
        ),
        sincedb_path=_optional_path(options, "sincedb_path", config_dir),
        data_dir=_optional_path(options, "data_dir", config_dir),
        pin_start_position=_as_bool(options, "pin_start_position", False),
        region=options.get("region") or None,
        profile=options.get("profile") or None,
        endpoint_url=options.get("endpoint_url") or None,
        retry=retry,
    )


def load_config(
    path: Union[str, Path],
    *,
    env_file: Optional[Union[str, Path]] = None,
) -> PollerConfig:
    """Load and validate a YAML configuration file.

    A ``.env`` file (``env_file``, or one found next to the working
    directory) is loaded first so ``${VAR}`` references can use it.
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Configuration file not found: {path}", field="config")

    load_env_file(env_file)

    try:
        with open(path, encoding="utf-8") as handle:
            options = yaml.safe_load(handle) or {}
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {path}: {exc}") from exc

    config = load_config_from_dict(options, config_dir=path.parent)
    logger.debug("Loaded configuration from %s: %s", path, config)
    return config
