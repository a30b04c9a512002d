"""Incremental CloudWatch Logs poller with restart-safe de-duplication."""

__version__ = "1.0.0"
