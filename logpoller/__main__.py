"""CLI entry point for the log poller.

Usage:
    python -m logpoller run poller.yaml
    python -m logpoller run poller.yaml --once --json-log
    python -m logpoller show-state poller.yaml

Forwarded records are written to stdout as JSON lines; logs go to stderr.
"""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
from typing import Any, Dict, List, Optional

from logpoller.lib.config_loader import PollerConfig, load_config
from logpoller.lib.errors import ConfigurationError
from logpoller.lib.logging import setup_logging
from logpoller.lib.poller import LogPoller
from logpoller.lib.store import WatermarkStore

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_CONFIG_ERROR = 2


def describe_state(config: PollerConfig) -> Dict[str, Any]:
    """Summarise the saved state of every group in the state file."""
    store = WatermarkStore(config.sincedb_path, config.prune_since_db_stream_minutes)
    result = store.load()

    groups: Dict[str, Any] = {}
    for group in store:
        tracker = store.get(group)
        if tracker is None:
            continue
        window = tracker.events_by_timestamp
        groups[group] = {
            "min_time": tracker.min_time(),
            "max_time": tracker.max_time,
            "timestamps": len(window),
            "events": sum(len(ids) for ids in window.values()),
        }

    return {
        "path": str(config.sincedb_path),
        "format": result.format.value,
        "error": result.error,
        "groups": groups,
    }


def _install_signal_handlers(poller: LogPoller) -> None:
    def handle(signum: int, _frame: Any) -> None:
        logger.info("Received signal %d, stopping after the current page", signum)
        poller.stop()

    signal.signal(signal.SIGTERM, handle)


def cmd_run(args: argparse.Namespace, config: PollerConfig) -> int:
    poller = LogPoller.from_config(config)
    _install_signal_handlers(poller)
    try:
        poller.run(max_cycles=1 if args.once else None)
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down")
        poller.stop()
    return EXIT_OK


def cmd_show_state(args: argparse.Namespace, config: PollerConfig) -> int:
    print(json.dumps(describe_state(config), indent=2))
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="logpoller",
        description="Poll CloudWatch Logs groups and forward new events",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Poll forever, one cycle every `interval` seconds
    logpoller run poller.yaml

    # Single cycle (cron style)
    logpoller run poller.yaml --once

    # Inspect the saved watermarks
    logpoller show-state poller.yaml
        """,
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--json-log",
        action="store_true",
        help="Output logs in JSON format (for log aggregation systems)",
    )
    parser.add_argument(
        "--log-file",
        help="Write logs to a file in addition to stderr",
    )
    parser.add_argument(
        "--env-file",
        help="Load environment variables from this .env file",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    run_parser = subparsers.add_parser("run", help="Poll log groups")
    run_parser.add_argument("config", help="Path to the YAML configuration")
    run_parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single polling cycle and exit",
    )
    run_parser.set_defaults(handler=cmd_run)

    state_parser = subparsers.add_parser("show-state", help="Print the saved watermarks")
    state_parser.add_argument("config", help="Path to the YAML configuration")
    state_parser.set_defaults(handler=cmd_show_state)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(verbose=args.verbose, json_format=args.json_log, log_file=args.log_file)

    try:
        config = load_config(args.config, env_file=args.env_file)
    except ConfigurationError as exc:
        logger.error("Invalid configuration: %s", exc)
        return EXIT_CONFIG_ERROR

    return args.handler(args, config)


if __name__ == "__main__":
    sys.exit(main())
