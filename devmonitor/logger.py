"""
Structured logging system for devmonitor.

Provides centralized logging with console and file outputs, log levels,
and in-process metrics for classifier outcomes and event delivery.
"""

import logging
import sys
from pathlib import Path
from typing import Iterable, Optional
from datetime import datetime
import json


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks how changes are classified and how events are delivered.
    """

    def __init__(
        self,
        name: str = "devmonitor",
        level: str = "INFO",
        log_dir: Optional[Path] = None,
        enable_file: bool = True,
        enable_console: bool = True,
    ):
        """
        Initialize the structured logger.

        Args:
            name: Logger name
            level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for log files (default: logs/)
            enable_file: Write logs to file
            enable_console: Output logs to console
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.handlers.clear()
        self.logger.propagate = False

        self.metrics = {
            "evaluations": 0,
            "updates_recommended": 0,
            "rewrites_recommended": 0,
            "violations_by_bound": {},
            "events_published": 0,
            "events_dropped": 0,
            "webhook_deliveries": 0,
            "webhook_failures": 0,
        }

        if enable_console:
            # stderr keeps CLI output on stdout machine-readable
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        if enable_file:
            if log_dir is None:
                log_dir = Path("logs")
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"devmonitor_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)
            file_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            file_handler.setFormatter(file_formatter)
            self.logger.addHandler(file_handler)

    def debug(self, message: str, **kwargs):
        """Log debug message with optional context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        """Log info message with optional context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        """Log warning message with optional context."""
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        """Log error message with optional context."""
        self._log(logging.ERROR, message, kwargs)

    def critical(self, message: str, **kwargs):
        """Log critical message with optional context."""
        self._log(logging.CRITICAL, message, kwargs)

    def _log(self, level: int, message: str, context: dict):
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def record_evaluation(self, decision: str, violations: Iterable[str] = ()):
        """Record one classifier outcome and the bounds it violated."""
        self.metrics["evaluations"] += 1
        if decision == "update":
            self.metrics["updates_recommended"] += 1
        else:
            self.metrics["rewrites_recommended"] += 1
        for bound in violations:
            by_bound = self.metrics["violations_by_bound"]
            by_bound[bound] = by_bound.get(bound, 0) + 1

    def record_event_published(self):
        self.metrics["events_published"] += 1

    def record_event_dropped(self):
        self.metrics["events_dropped"] += 1

    def record_webhook_delivery(self, success: bool):
        if success:
            self.metrics["webhook_deliveries"] += 1
        else:
            self.metrics["webhook_failures"] += 1

    def get_metrics(self) -> dict:
        """Return current metrics, with the update ratio filled in."""
        metrics_copy = dict(self.metrics)
        metrics_copy["violations_by_bound"] = dict(self.metrics["violations_by_bound"])
        if metrics_copy["evaluations"] > 0:
            metrics_copy["update_rate"] = round(
                metrics_copy["updates_recommended"] / metrics_copy["evaluations"], 3
            )
        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        total = metrics["evaluations"]
        updates = metrics["updates_recommended"]
        rate = round(metrics.get("update_rate", 0) * 100, 1)

        self.info("=== Change Classification Metrics ===")
        self.info(f"Evaluations: {total} ({updates} updates, {metrics['rewrites_recommended']} rewrites, {rate}% update)")

        if metrics["violations_by_bound"]:
            self.info("Violated bounds:")
            for bound, count in metrics["violations_by_bound"].items():
                self.info(f"  {bound}: {count}")

        self.info(
            f"Events: {metrics['events_published']} published, {metrics['events_dropped']} dropped"
        )
        if metrics["webhook_deliveries"] or metrics["webhook_failures"]:
            self.info(
                f"Webhook: {metrics['webhook_deliveries']} delivered, {metrics['webhook_failures']} failed"
            )


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "devmonitor",
    level: str = "INFO",
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **kwargs: Additional arguments passed to StructuredLogger

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        _global_logger = StructuredLogger(name=name, level=level, **kwargs)

    return _global_logger


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    _global_logger = None
