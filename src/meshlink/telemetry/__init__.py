"""Telemetry module for logging, metrics, and reporting."""

from meshlink.telemetry.logger import AsyncLogger, setup_logging
from meshlink.telemetry.metrics import MetricsCollector
from meshlink.telemetry.reporter import CLIReporter


__all__ = [
    "AsyncLogger",
    "CLIReporter",
    "MetricsCollector",
    "setup_logging",
]
