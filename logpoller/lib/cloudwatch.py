"""CloudWatch Logs source backed by boto3.

Wraps the two calls the poller needs:

- ``describe_log_groups`` to expand configured prefixes into group names
- ``filter_log_events`` to read one page of events for a group

Throttling and transient transport errors are retried with tenacity.
When retries are exhausted a :class:`ThrottledError` is raised for
throttling and a :class:`SourceError` for everything else.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from logpoller.lib.errors import SourceError, ThrottledError
from logpoller.lib.resilience import RetryConfig, build_retrying
from logpoller.lib.tracker import LogEvent

if TYPE_CHECKING:
    from logpoller.lib.config_loader import PollerConfig

logger = logging.getLogger(__name__)

__all__ = ["CloudWatchLogsSource", "EventPage", "is_throttling_error"]

THROTTLING_ERROR_CODES = {
    "ThrottlingException",
    "Throttling",
    "TooManyRequestsException",
    "RequestLimitExceeded",
}


@dataclass
class EventPage:
    """One page of ``filter_log_events`` results."""

    events: List[LogEvent] = field(default_factory=list)
    next_token: Optional[str] = None

    @property
    def has_more(self) -> bool:
        return self.next_token is not None


def _error_code(exc: ClientError) -> Optional[str]:
    return exc.response.get("Error", {}).get("Code")


def is_throttling_error(exc: BaseException) -> bool:
    if not isinstance(exc, ClientError):
        return False
    status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return _error_code(exc) in THROTTLING_ERROR_CODES or status == 429


def _should_retry(exc: BaseException) -> bool:
    """Retry throttling, server-side failures and transport errors."""
    if isinstance(exc, BotoCoreError):
        return True
    if isinstance(exc, ClientError):
        status = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode") or 0
        return is_throttling_error(exc) or status >= 500
    return False


class CloudWatchLogsSource:
    """Reads log groups and log events from CloudWatch Logs.

    Example:
        source = CloudWatchLogsSource.from_config(config)
        page = source.filter_log_events("/aws/lambda/orders", start_time=0)
        while True:
            handle(page.events)
            if not page.has_more:
                break
            page = source.filter_log_events(
                "/aws/lambda/orders", start_time=0, next_token=page.next_token
            )
    """

    def __init__(
        self,
        client: Any,
        *,
        retry: Optional[RetryConfig] = None,
    ) -> None:
        self.client = client
        self.retry = retry or RetryConfig.default()

    @classmethod
    def from_config(cls, config: "PollerConfig") -> "CloudWatchLogsSource":
        """Build a source using the region/profile/endpoint of ``config``.

        Credentials come from the standard boto3 chain.
        """
        session = boto3.Session(
            profile_name=config.profile,
            region_name=config.region,
        )
        client = session.client("logs", endpoint_url=config.endpoint_url)
        logger.debug(
            "Created CloudWatch Logs client (region=%s, endpoint=%s)",
            session.region_name,
            config.endpoint_url or "default",
        )
        return cls(client, retry=config.retry)

    def _call(self, operation: str, group: Optional[str], **params: Any) -> Dict[str, Any]:
        retrying = build_retrying(self.retry, _should_retry, operation)
        method = getattr(self.client, operation)
        try:
            return retrying(method, **params)
        except ClientError as exc:
            if is_throttling_error(exc):
                raise ThrottledError(
                    f"{operation} throttled after {self.retry.max_attempts} attempt(s)",
                    group=group,
                    operation=operation,
                    cause=exc,
                ) from exc
            raise SourceError(
                f"{operation} failed: {_error_code(exc) or 'unknown error'}",
                group=group,
                operation=operation,
                cause=exc,
            ) from exc
        except BotoCoreError as exc:
            raise SourceError(
                f"{operation} failed",
                group=group,
                operation=operation,
                cause=exc,
            ) from exc

    def describe_log_groups(self, prefix: str) -> List[str]:
        """Return the names of every log group starting with ``prefix``."""
        names: List[str] = []
        next_token: Optional[str] = None
        while True:
            params: Dict[str, Any] = {"logGroupNamePrefix": prefix}
            if next_token:
                params["nextToken"] = next_token
            response = self._call("describe_log_groups", None, **params)
            found = [g["logGroupName"] for g in response.get("logGroups", [])]
            names.extend(found)
            logger.debug("Found %d log group(s) matching prefix %s", len(found), prefix)
            next_token = response.get("nextToken")
            if not next_token:
                break
        return names

    def filter_log_events(
        self,
        group: str,
        start_time: int,
        next_token: Optional[str] = None,
    ) -> EventPage:
        """Fetch one page of events for ``group`` at or after ``start_time``."""
        params: Dict[str, Any] = {"logGroupName": group, "startTime": start_time}
        if next_token:
            params["nextToken"] = next_token

        response = self._call("filter_log_events", group, **params)
        events = [LogEvent.from_api(e) for e in response.get("events", [])]
        return EventPage(events=events, next_token=response.get("nextToken") or None)
