"""Polling loop that moves events from CloudWatch Logs to a sink.

Each cycle:
1. resolve the log groups to poll (names, or prefixes expanded remotely),
   least recently processed first
2. for each group, page through ``filter_log_events`` from the group's
   watermark (or the configured start position for a new group)
3. forward every event the watermark store has not seen, then purge and
   save the store once per page
4. sleep ``interval`` seconds, waking early on :meth:`LogPoller.stop`

Everything runs on one thread; the store is only touched from here.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from logpoller.lib.cloudwatch import CloudWatchLogsSource
from logpoller.lib.config_loader import PollerConfig
from logpoller.lib.errors import SourceError, ThrottledError
from logpoller.lib.logging import get_poller_logger
from logpoller.lib.records import JsonLinesSink, build_record
from logpoller.lib.start_position import now_millis, resolve_start_time
from logpoller.lib.store import WatermarkStore
from logpoller.lib.tracker import LogEvent

__all__ = ["GroupResult", "LogPoller", "PollResult"]

Sink = Callable[[Dict[str, Any]], Any]


@dataclass
class GroupResult:
    """Counts for one pass over a log group."""

    group: str
    start_time: int
    pages: int = 0
    fetched: int = 0
    forwarded: int = 0

    @property
    def duplicates(self) -> int:
        return self.fetched - self.forwarded


@dataclass
class PollResult:
    """Outcome of one polling cycle."""

    groups: List[GroupResult] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)
    throttled: bool = False

    @property
    def forwarded(self) -> int:
        return sum(g.forwarded for g in self.groups)

    @property
    def fetched(self) -> int:
        return sum(g.fetched for g in self.groups)


class LogPoller:
    """Drives the poll loop for a set of log groups.

    Example:
        config = load_config("poller.yaml")
        poller = LogPoller.from_config(config)
        poller.run()
    """

    def __init__(
        self,
        config: PollerConfig,
        source: CloudWatchLogsSource,
        store: WatermarkStore,
        sink: Optional[Sink] = None,
        clock: Optional[Callable[[], int]] = None,
    ) -> None:
        self.config = config
        self.source = source
        self.store = store
        self.sink: Sink = sink if sink is not None else JsonLinesSink()
        self.clock = clock or now_millis
        self.log = get_poller_logger(__name__)
        # most recently processed group last
        self._priority: List[str] = []
        self._stop_event = threading.Event()

    @classmethod
    def from_config(cls, config: PollerConfig, sink: Optional[Sink] = None) -> "LogPoller":
        store = WatermarkStore(config.sincedb_path, config.prune_since_db_stream_minutes)
        return cls(config, CloudWatchLogsSource.from_config(config), store, sink=sink)

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def stop(self) -> None:
        """Ask the loop to finish after the current page."""
        self._stop_event.set()

    def _priority_of(self, group: str) -> int:
        try:
            return self._priority.index(group)
        except ValueError:
            return -1

    def find_log_groups(self) -> List[str]:
        """Return the groups to poll, least recently processed first."""
        if self.config.log_group_prefix:
            groups: List[str] = []
            for prefix in self.config.log_group:
                groups.extend(self.source.describe_log_groups(prefix))
        else:
            groups = list(self.config.log_group)
        return sorted(groups, key=self._priority_of)

    def start_time_for(self, group: str) -> int:
        """Lower time bound of the next query for ``group``.

        A group without a watermark starts from the configured start
        position, recomputed against the current clock on every call unless
        ``pin_start_position`` is set.
        """
        watermark = self.store.min_time(group)
        if watermark is not None:
            return watermark

        default = resolve_start_time(self.config.start_position, self.clock())
        if self.config.pin_start_position:
            return self.store.get_or_set_min_time(group, default)
        return default

    def _deliver(self, group: str) -> Callable[[LogEvent], None]:
        def deliver(event: LogEvent) -> None:
            self.sink(build_record(group, event))

        return deliver

    def process_group(self, group: str) -> GroupResult:
        """Page through ``group`` from its watermark, forwarding new events."""
        start_time = self.start_time_for(group)
        result = GroupResult(group=group, start_time=start_time)
        deliver = self._deliver(group)
        next_token: Optional[str] = None

        self.log.set_context(group=group)
        try:
            self.log.debug("Polling from %d", start_time)
            while not self.stopped:
                page = self.source.filter_log_events(group, start_time, next_token)
                result.pages += 1
                forwarded = 0
                try:
                    for event in page.events:
                        if self.store.forward_if_new(group, event, deliver):
                            forwarded += 1
                finally:
                    result.fetched += len(page.events)
                    result.forwarded += forwarded
                    self.store.purge(group)
                    self.store.save()

                self.log.metric("events_forwarded", forwarded, unit="events", page=result.pages)
                next_token = page.next_token
                if next_token is None:
                    break
        finally:
            self.log.clear_context("group")

        if group in self._priority:
            self._priority.remove(group)
        self._priority.append(group)

        if result.forwarded:
            self.log.info(
                "%s: forwarded %d of %d event(s) in %d page(s)",
                group,
                result.forwarded,
                result.fetched,
                result.pages,
            )
        return result

    def poll_once(self) -> PollResult:
        """Run a single pass over every log group."""
        result = PollResult()

        try:
            groups = self.find_log_groups()
        except ThrottledError as exc:
            self.log.warning("Reached rate limit listing log groups: %s", exc.message)
            result.throttled = True
            return result
        except SourceError:
            self.log.exception("Failed to list log groups")
            return result

        for group in groups:
            if self.stopped:
                break
            try:
                result.groups.append(self.process_group(group))
            except ThrottledError as exc:
                # give the API a full interval to recover
                self.log.warning("Reached rate limit polling %s: %s", group, exc.message)
                result.throttled = True
                break
            except SourceError:
                self.log.exception("Failed to poll %s", group)
                result.failed.append(group)

        self.log.metric("groups_polled", len(result.groups), unit="groups")
        self.log.metric("events_forwarded_total", result.forwarded, unit="events")
        return result

    def run(self, max_cycles: Optional[int] = None) -> int:
        """Load saved state and poll until stopped.

        Returns the number of cycles completed.
        """
        load_result = self.store.load()
        self.log.info(
            "Starting poller for %s (state: %s)",
            ",".join(self.config.log_group),
            load_result,
        )

        cycles = 0
        while not self.stopped:
            self.poll_once()
            cycles += 1
            if max_cycles is not None and cycles >= max_cycles:
                break
            self._stop_event.wait(self.config.interval)

        self.log.info("Poller stopped after %d cycle(s)", cycles)
        return cycles
