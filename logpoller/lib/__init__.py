"""Poller library modules.

The watermark store and group trackers decide which fetched events are new;
the remaining modules load configuration, talk to CloudWatch Logs and drive
the polling loop.
"""

from logpoller.lib.cloudwatch import CloudWatchLogsSource, EventPage
from logpoller.lib.config_loader import PollerConfig, load_config, load_config_from_dict
from logpoller.lib.errors import ConfigurationError, PollerError, SourceError, ThrottledError
from logpoller.lib.poller import GroupResult, LogPoller, PollResult
from logpoller.lib.records import JsonLinesSink, build_record
from logpoller.lib.resilience import RetryConfig
from logpoller.lib.start_position import resolve_start_time, validate_start_position
from logpoller.lib.store import LoadResult, StateFormat, WatermarkStore
from logpoller.lib.tracker import GroupTracker, LogEvent

__all__ = [
    "CloudWatchLogsSource",
    "ConfigurationError",
    "EventPage",
    "GroupResult",
    "GroupTracker",
    "JsonLinesSink",
    "LoadResult",
    "LogEvent",
    "LogPoller",
    "PollResult",
    "PollerConfig",
    "PollerError",
    "RetryConfig",
    "SourceError",
    "StateFormat",
    "ThrottledError",
    "WatermarkStore",
    "build_record",
    "load_config",
    "load_config_from_dict",
    "resolve_start_time",
    "validate_start_position",
]
