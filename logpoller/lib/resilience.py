"""Retry utilities for calls to the remote log source.

Uses tenacity internally. The poller itself never retries state file
writes; only remote calls go through here.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

import tenacity
from tenacity.wait import wait_base

logger = logging.getLogger(__name__)

__all__ = ["RetryConfig", "build_retrying"]


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(
        self,
        max_attempts: int = 5,
        backoff_seconds: float = 1.0,
        exponential: bool = True,
        jitter: bool = True,
        max_backoff_seconds: float = 30.0,
    ):
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self.exponential = exponential
        self.jitter = jitter
        self.max_backoff_seconds = max_backoff_seconds

    def __repr__(self) -> str:
        return (
            f"RetryConfig(max_attempts={self.max_attempts}, "
            f"backoff_seconds={self.backoff_seconds}, exponential={self.exponential}, "
            f"jitter={self.jitter})"
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RetryConfig):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    @classmethod
    def none(cls) -> "RetryConfig":
        """No retry - fail immediately."""
        return cls(max_attempts=1)

    @classmethod
    def default(cls) -> "RetryConfig":
        """Default retry: 5 attempts with exponential backoff."""
        return cls()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RetryConfig":
        known = ("max_attempts", "backoff_seconds", "exponential", "jitter", "max_backoff_seconds")
        unknown = sorted(set(data) - set(known))
        if unknown:
            raise ValueError(f"Unknown retry option(s): {', '.join(unknown)}")

        for key in ("exponential", "jitter"):
            if key in data and not isinstance(data[key], bool):
                raise ValueError(f"retry.{key} must be true or false, got {data[key]!r}")

        attempts = data.get("max_attempts", 1)
        if isinstance(attempts, bool) or not isinstance(attempts, int) or attempts < 1:
            raise ValueError(f"retry.max_attempts must be an integer >= 1, got {attempts!r}")

        for key in ("backoff_seconds", "max_backoff_seconds"):
            value = data.get(key, 0)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                raise ValueError(f"retry.{key} must be a non-negative number, got {value!r}")

        return cls(**{k: data[k] for k in known if k in data})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "max_attempts": self.max_attempts,
            "backoff_seconds": self.backoff_seconds,
            "exponential": self.exponential,
            "jitter": self.jitter,
            "max_backoff_seconds": self.max_backoff_seconds,
        }

    def wait_strategy(self) -> wait_base:
        wait: wait_base
        if self.exponential:
            # backoff_seconds * 2^(attempt-1), capped
            wait = tenacity.wait_exponential(
                multiplier=self.backoff_seconds,
                min=self.backoff_seconds,
                max=self.max_backoff_seconds,
            )
        else:
            wait = tenacity.wait_fixed(self.backoff_seconds)

        if self.jitter and self.backoff_seconds > 0:
            wait = wait + tenacity.wait_random(0, self.backoff_seconds * 0.5)
        return wait


def build_retrying(
    config: RetryConfig,
    retry_if: Callable[[BaseException], bool],
    operation_name: str = "operation",
    sleep: Optional[Callable[[float], None]] = None,
) -> tenacity.Retrying:
    """Build a tenacity retryer that re-raises the last error when exhausted.

    Example:
        retrying = build_retrying(RetryConfig.default(), is_throttling, "filter_log_events")
        response = retrying(client.filter_log_events, **params)
    """

    def before_sleep_handler(retry_state: tenacity.RetryCallState) -> None:
        exception = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "%s attempt %d/%d failed: %s. Retrying in %.1fs...",
            operation_name,
            retry_state.attempt_number,
            config.max_attempts,
            exception,
            retry_state.next_action.sleep if retry_state.next_action else 0,
        )

    kwargs: Dict[str, Any] = {}
    if sleep is not None:
        kwargs["sleep"] = sleep

    return tenacity.Retrying(
        stop=tenacity.stop_after_attempt(max(config.max_attempts, 1)),
        wait=config.wait_strategy(),
        retry=tenacity.retry_if_exception(retry_if),
        before_sleep=before_sleep_handler,
        reraise=True,
        **kwargs,
    )
