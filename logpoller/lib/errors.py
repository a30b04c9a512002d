"""Structured exception hierarchy for the log poller.

Provides specific exception types for the failure modes the poller
distinguishes, with enough context for debugging and troubleshooting.

Persistence problems (unwritable or unreadable state files) are never
raised; the watermark store logs them and carries on.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

__all__ = [
    "PollerError",
    "ConfigurationError",
    "SourceError",
    "ThrottledError",
]


class PollerError(Exception):
    """Base exception for all poller errors.

    Provides structured error information for debugging.
    """

    def __init__(
        self,
        message: str,
        *,
        group: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        self.group = group
        self.details = details or {}
        self.suggestion = suggestion

        parts = [message]

        if group:
            parts.insert(0, f"[{group}]")

        if details:
            detail_lines = [f"  {k}: {v}" for k, v in details.items()]
            parts.append("\nDetails:")
            parts.extend(detail_lines)

        if suggestion:
            parts.append(f"\nSuggestion: {suggestion}")

        self.message = message
        super().__init__("\n".join(parts) if len(parts) > 1 else message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "group": self.group,
            "details": self.details,
            "suggestion": self.suggestion,
        }


class ConfigurationError(PollerError):
    """Error in poller configuration.

    Raised at start-up when configuration is invalid or incomplete.
    """

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Any = None,
        **kwargs: Any,
    ) -> None:
        self.field = field
        self.value = value

        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)

        super().__init__(message, details=details, **kwargs)


class SourceError(PollerError):
    """Error talking to the remote log source.

    Raised when a describe/filter call fails for a reason other than
    throttling, or when retries are exhausted.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: Optional[str] = None,
        cause: Optional[BaseException] = None,
        **kwargs: Any,
    ) -> None:
        self.operation = operation
        self.cause = cause

        details = kwargs.pop("details", {})
        if operation:
            details["operation"] = operation
        if cause:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        super().__init__(message, details=details, **kwargs)


class ThrottledError(SourceError):
    """The remote source kept rejecting requests with a rate limit."""

    def __init__(self, message: str, **kwargs: Any) -> None:
        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = (
                "Increase the polling interval or reduce the number of "
                "log groups polled by this process."
            )
        super().__init__(message, suggestion=suggestion, **kwargs)
