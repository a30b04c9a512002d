"""Persistence of per-group event windows.

The store owns one :class:`GroupTracker` per log group and persists all of
them to a single state file. Two on-disk formats are understood:

Current format (JSON)::

    {"group-a": {"1700000000000": ["stream-1:event-1", "stream-2:event-9"]}}

Legacy format (read only), one position per line::

    group-a:stream-1 1700000000000
    group-a 1700000000123

Loading a legacy file keeps only the newest position of each group and
drops per-stream detail, so the first cycle after an upgrade may deliver a
few duplicates instead of re-reading history.

The state file is a single-writer resource and writes are not atomic. A
corrupt file is treated as absent.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, Optional, Union

from logpoller.lib.tracker import GroupTracker, LogEvent

logger = logging.getLogger(__name__)

__all__ = ["LoadResult", "StateFormat", "WatermarkStore"]


class StateFormat(Enum):
    """Format detected when loading the state file."""

    JSON = "json"
    LEGACY = "legacy"
    EMPTY = "empty"


@dataclass
class LoadResult:
    """Outcome of :meth:`WatermarkStore.load`."""

    format: StateFormat
    group_count: int = 0
    error: Optional[str] = None

    @property
    def loaded(self) -> bool:
        return self.format is not StateFormat.EMPTY

    def __str__(self) -> str:
        if self.error:
            return f"{self.format.value} state ({self.error})"
        return f"{self.format.value} state with {self.group_count} group(s)"


class _MalformedState(ValueError):
    """State file content could not be interpreted."""


class WatermarkStore:
    """Owns every group tracker and the state file they are saved to.

    Example:
        store = WatermarkStore("/var/lib/logpoller/.sincedb_abc", 60)
        store.load()
        if store.is_new_event("app-logs", event):
            deliver(event)
            store.record_processed_event("app-logs", event)
        store.purge("app-logs")
        store.save()
    """

    def __init__(self, path: Union[str, Path], prune_window_minutes: int) -> None:
        self.path = Path(path)
        self.prune_window_minutes = prune_window_minutes
        self._groups: Dict[str, GroupTracker] = {}

    def __contains__(self, group: object) -> bool:
        return group in self._groups

    def __iter__(self) -> Iterator[str]:
        return iter(self._groups)

    def __len__(self) -> int:
        return len(self._groups)

    def get(self, group: str) -> Optional[GroupTracker]:
        """Return the tracker for ``group`` without creating one."""
        return self._groups.get(group)

    def get_or_create(self, group: str) -> GroupTracker:
        """Return the tracker for ``group``, creating an empty one on miss."""
        tracker = self._groups.get(group)
        if tracker is None:
            tracker = GroupTracker(self.prune_window_minutes)
            self._groups[group] = tracker
        return tracker

    # -- per-event operations -------------------------------------------------

    def is_new_event(self, group: str, event: LogEvent) -> bool:
        return self.get_or_create(group).is_new_event(event)

    def record_processed_event(self, group: str, event: LogEvent) -> None:
        self.get_or_create(group).record_processed_event(event)

    def forward_if_new(
        self,
        group: str,
        event: LogEvent,
        deliver: Callable[[LogEvent], Any],
    ) -> bool:
        """Deliver ``event`` unless it was already seen, then record it.

        Returns True when the event was handed to ``deliver``. If ``deliver``
        raises, the event is left unrecorded so a later poll can retry it.
        """
        tracker = self.get_or_create(group)
        if not tracker.is_new_event(event):
            return False
        deliver(event)
        tracker.record_processed_event(event)
        return True

    def purge(self, group: str) -> None:
        """Drop events older than the prune window for ``group``."""
        self.get_or_create(group).purge()

    def min_time(self, group: str, default: Optional[int] = None) -> Optional[int]:
        return self.get_or_create(group).min_time(default)

    def get_or_set_min_time(self, group: str, default: Optional[int] = None) -> Optional[int]:
        return self.get_or_create(group).get_or_set_min_time(default)

    # -- persistence ----------------------------------------------------------

    def to_save_model(self) -> Dict[str, Dict[str, Any]]:
        return {group: tracker.to_save_model() for group, tracker in self._groups.items()}

    def save(self) -> bool:
        """Write every group to the state file.

        Best effort: on failure the previous file content is left as it was
        and False is returned. The next successful save catches up.
        """
        payload = json.dumps(self.to_save_model())
        try:
            with open(self.path, "w", encoding="utf-8") as handle:
                handle.write(payload)
        except OSError as exc:
            logger.warning("Failed to write state file %s: %s", self.path, exc)
            return False

        logger.debug("Saved %d group(s) to %s", len(self._groups), self.path)
        return True

    def load(self) -> LoadResult:
        """Replace in-memory state with the content of the state file.

        Never raises: a missing, unreadable or unparsable file leaves the
        store empty, and every group is then treated as never seen.
        """
        self._groups.clear()

        if not self.path.exists():
            logger.debug("No state file at %s, starting empty", self.path)
            return LoadResult(StateFormat.EMPTY)

        try:
            text = self.path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Failed to read state file %s: %s", self.path, exc)
            return LoadResult(StateFormat.EMPTY, error=str(exc))

        if not text.strip():
            logger.debug("State file %s is empty", self.path)
            return LoadResult(StateFormat.EMPTY)

        result = self._parse(text)
        if result.loaded:
            logger.info("Loaded %s from %s", result, self.path)
        else:
            logger.warning("Ignoring state file %s: %s", self.path, result.error)
        return result

    def _parse(self, text: str) -> LoadResult:
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            data = None
            state_format = StateFormat.LEGACY
        else:
            state_format = StateFormat.JSON

        try:
            if state_format is StateFormat.JSON:
                groups = self._groups_from_json(data)
            else:
                groups = self._groups_from_legacy(text)
        except _MalformedState as exc:
            return LoadResult(StateFormat.EMPTY, error=f"malformed {state_format.value} state: {exc}")

        self._groups = groups
        return LoadResult(state_format, group_count=len(groups))

    def _groups_from_json(self, data: Any) -> Dict[str, GroupTracker]:
        if not isinstance(data, dict):
            raise _MalformedState(f"expected an object, got {type(data).__name__}")

        groups: Dict[str, GroupTracker] = {}
        for group, window in data.items():
            if not isinstance(window, dict):
                raise _MalformedState(f"group {group!r} is not an object")
            tracker = GroupTracker(self.prune_window_minutes)
            for ts, identities in window.items():
                if not isinstance(identities, list):
                    raise _MalformedState(f"group {group!r} timestamp {ts!r} is not a list")
                try:
                    timestamp = int(ts)
                except ValueError:
                    raise _MalformedState(f"group {group!r} has non-numeric timestamp {ts!r}") from None
                tracker.restore(timestamp, (str(identity) for identity in identities))
            groups[group] = tracker
        return groups

    def _groups_from_legacy(self, text: str) -> Dict[str, GroupTracker]:
        groups: Dict[str, GroupTracker] = {}
        for lineno, line in enumerate(text.splitlines(), start=1):
            if not line.strip():
                continue
            identifier, _, position = line.strip().partition(" ")
            try:
                timestamp = int(position)
            except ValueError:
                raise _MalformedState(f"line {lineno}: {line.strip()!r}") from None

            group = identifier.split(":", 1)[0]
            tracker = groups.get(group)
            if tracker is None:
                tracker = GroupTracker(self.prune_window_minutes)
                groups[group] = tracker
            tracker.update_ranges(timestamp)
            tracker.set_to_tail()
        return groups
