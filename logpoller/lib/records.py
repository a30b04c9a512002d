"""Output records built from forwarded log events."""

from __future__ import annotations

import json
import sys
from datetime import datetime, timedelta, timezone
from typing import IO, Any, Dict, Optional

from logpoller.lib.tracker import LogEvent

__all__ = ["JsonLinesSink", "build_record", "format_timestamp"]


def format_timestamp(millis: Optional[int]) -> Optional[str]:
    """ISO-8601 UTC rendering of a millisecond epoch timestamp."""
    if millis is None:
        return None
    moment = datetime.fromtimestamp(millis // 1000, tz=timezone.utc) + timedelta(
        milliseconds=millis % 1000
    )
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_record(group: str, event: LogEvent) -> Dict[str, Any]:
    """Build the record forwarded downstream for ``event``."""
    return {
        "@timestamp": format_timestamp(event.timestamp),
        "message": event.message,
        "cloudwatch_logs": {
            "ingestion_time": format_timestamp(event.ingestion_time),
            "log_group": group,
            "log_stream": event.log_stream_name,
            "event_id": event.event_id,
        },
    }


class JsonLinesSink:
    """Writes one JSON record per line to a text stream (stdout by default)."""

    def __init__(self, stream: Optional[IO[str]] = None) -> None:
        self.stream = stream if stream is not None else sys.stdout
        self.count = 0

    def __call__(self, record: Dict[str, Any]) -> None:
        self.stream.write(json.dumps(record) + "\n")
        self.stream.flush()
        self.count += 1
