"""Process logging for the poller.

Logs always go to stderr (stdout carries forwarded records). Per-group
context and page/cycle counters are attached to records as extra fields.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

__all__ = [
    "setup_logging",
    "JSONFormatter",
    "PollerLogger",
    "get_poller_logger",
]

_RESERVED_ATTRS = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {
    "message",
    "asctime",
}


class JSONFormatter(logging.Formatter):
    """One JSON object per record; extra fields go under ``"extra"``."""

    def __init__(self, exclude_fields: Optional[list[str]] = None):
        super().__init__()
        self.exclude_fields = exclude_fields or []

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc)
            .isoformat(timespec="milliseconds")
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # attributes passed with extra=
        extra_attrs = {
            k: v
            for k, v in record.__dict__.items()
            if k not in _RESERVED_ATTRS and k not in self.exclude_fields
        }
        if extra_attrs:
            log_data["extra"] = extra_attrs

        return json.dumps(log_data, default=str)


class PollerLogger:
    """Wraps a module logger and stamps the current group on every record."""

    def __init__(self, name: str):
        self._logger = logging.getLogger(name)
        self._context: Dict[str, Any] = {}

    @property
    def context(self) -> Dict[str, Any]:
        return dict(self._context)

    def set_context(self, **kwargs: Any) -> None:
        self._context.update(kwargs)

    def clear_context(self, *keys: str) -> None:
        """Clear the given context keys, or everything when none are given."""
        if not keys:
            self._context.clear()
            return
        for key in keys:
            self._context.pop(key, None)

    def _log(self, level: int, msg: str, *args: Any, **kwargs: Any) -> None:
        extra = dict(kwargs.pop("extra", {}))
        extra.update(self._context)
        self._logger.log(level, msg, *args, extra=extra, **kwargs)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.DEBUG, msg, *args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.INFO, msg, *args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.WARNING, msg, *args, **kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log(logging.ERROR, msg, *args, **kwargs)

    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None:
        kwargs["exc_info"] = True
        self._log(logging.ERROR, msg, *args, **kwargs)

    def metric(
        self,
        name: str,
        value: Any,
        unit: Optional[str] = None,
        **tags: Any,
    ) -> None:
        """Emit a counter at DEBUG as ``METRIC name=value`` with tag fields."""
        extra: Dict[str, Any] = {
            "metric_name": name,
            "metric_value": value,
        }
        if unit:
            extra["metric_unit"] = unit
        extra.update(self._context)
        extra.update(tags)
        self._logger.debug("METRIC %s=%s", name, value, extra=extra)


def get_poller_logger(name: str) -> PollerLogger:
    return PollerLogger(name)


def setup_logging(
    verbose: bool = False,
    json_format: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Route root logging to stderr (and ``log_file``), quieting boto3."""
    level = logging.DEBUG if verbose else logging.INFO

    if json_format:
        formatter: logging.Formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # stdout is reserved for forwarded records
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    for noisy in ("boto3", "botocore", "urllib3"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
