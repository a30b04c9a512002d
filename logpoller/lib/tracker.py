"""Per-group event window used to de-duplicate overlapping poll results.

The remote ``filter_log_events`` query returns overlapping pages: the same
event can come back from consecutive polls against different time windows.
Each log group therefore keeps a window of the events it has already
delivered, keyed by millisecond timestamp and identified by
``<stream>:<event_id>``.

An event is "new" when it falls inside the window and its identity has not
been recorded yet. Events older than the window are assumed delivered.

The window is purged by log event time, not wall-clock time: everything more
than ``prune_window_minutes`` older than the newest recorded event is dropped.
This assumes events are processed roughly in time order, which is what
``filter_log_events`` returns.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional

__all__ = ["GroupTracker", "LogEvent"]

MILLIS_PER_MINUTE = 60 * 1000


@dataclass(frozen=True)
class LogEvent:
    """A single event returned by the remote log source.

    Fields:
        timestamp:       Event time in milliseconds since the epoch.
        log_stream_name: Stream the event was written to.
        event_id:        Provider-assigned id, unique within the stream.
        message:         Raw log payload.
        ingestion_time:  When the source ingested the event (ms epoch).
    """

    timestamp: int
    log_stream_name: str
    event_id: str
    message: str = ""
    ingestion_time: Optional[int] = None

    @property
    def identity(self) -> str:
        return f"{self.log_stream_name}:{self.event_id}"

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> "LogEvent":
        """Build an event from a ``filter_log_events`` event mapping."""
        ingestion_time = payload.get("ingestionTime")
        return cls(
            timestamp=int(payload["timestamp"]),
            log_stream_name=payload["logStreamName"],
            event_id=payload["eventId"],
            message=payload.get("message", ""),
            ingestion_time=int(ingestion_time) if ingestion_time is not None else None,
        )


class GroupTracker:
    """Dedup window and watermark range for a single log group."""

    def __init__(self, prune_window_minutes: int) -> None:
        self.prune_window_minutes = prune_window_minutes
        self._min_time: Optional[int] = None
        self._max_time: Optional[int] = None
        # timestamp (ms) -> identities seen in that millisecond, insertion ordered
        self._events_by_ms: Dict[int, Dict[str, None]] = {}

    def __repr__(self) -> str:
        return (
            f"GroupTracker(min_time={self._min_time}, max_time={self._max_time}, "
            f"buckets={len(self._events_by_ms)})"
        )

    @property
    def max_time(self) -> Optional[int]:
        return self._max_time

    @property
    def events_by_timestamp(self) -> Dict[int, List[str]]:
        """Copy of the dedup window as ``{timestamp: [identity, ...]}``."""
        return {ts: list(ids) for ts, ids in self._events_by_ms.items()}

    def min_time(self, default: Optional[int] = None) -> Optional[int]:
        """Return the group's watermark, or ``default`` if nothing was recorded."""
        if self._min_time is None:
            return default
        return self._min_time

    def get_or_set_min_time(self, default: Optional[int] = None) -> Optional[int]:
        """Return the watermark, pinning it to ``default`` when unset."""
        if self._min_time is None:
            self._min_time = default
        return self._min_time

    def is_new_event(self, event: LogEvent) -> bool:
        """Return True if the event hasn't been processed yet."""
        # nothing recorded for this group
        if self._min_time is None:
            return True
        # older than the window
        if event.timestamp < self._min_time:
            return False
        bucket = self._events_by_ms.get(event.timestamp)
        if bucket is None:
            return True
        return event.identity not in bucket

    def record_processed_event(self, event: LogEvent) -> None:
        """Record a delivered event in the window."""
        self.update_ranges(event.timestamp)
        self._events_by_ms.setdefault(event.timestamp, {})[event.identity] = None

    def purge(self) -> None:
        """Drop every bucket older than the prune window.

        The window is anchored on the newest recorded event, so groups that
        are polled sporadically keep their recent history.
        """
        if self._max_time is None:
            return

        purge_before = self._max_time - MILLIS_PER_MINUTE * self.prune_window_minutes
        if self._min_time is not None and self._min_time > purge_before:
            return

        self._min_time = purge_before
        for ts in [ts for ts in self._events_by_ms if ts < purge_before]:
            del self._events_by_ms[ts]

    def restore(self, timestamp: int, identities: Iterable[str]) -> None:
        """Register previously persisted identities under ``timestamp``."""
        self.update_ranges(timestamp)
        bucket = self._events_by_ms.setdefault(timestamp, {})
        for identity in identities:
            bucket[identity] = None

    def update_ranges(self, timestamp: int) -> None:
        if self._min_time is None or self._min_time > timestamp:
            self._min_time = timestamp
        if self._max_time is None or self._max_time < timestamp:
            self._max_time = timestamp

    def set_to_tail(self) -> None:
        """Collapse the window to its newest position and forget identities."""
        if self._max_time is not None:
            self._min_time = self._max_time
            self._events_by_ms.clear()

    def to_save_model(self) -> Dict[str, List[str]]:
        """Serialisable form: decimal-string timestamps to identity lists."""
        return {str(ts): list(ids) for ts, ids in self._events_by_ms.items()}
