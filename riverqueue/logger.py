"""
Structured logging for riverqueue.

Provides centralized logging with console and optional file output, and
tracks insert metrics: how many jobs were inserted, how many were skipped as
duplicates, and which uniqueness path handled them.
"""

import copy
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional


class StructuredLogger:
    """
    Centralized logger with support for console and file outputs.
    Tracks metrics for monitoring job insertion.
    """

    def __init__(
        self,
        name: str = "riverqueue",
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
            log_dir: Directory for log files; no file is written without one
            enable_file: Write logs to file when log_dir is set
            enable_console: Output logs to console
        """
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper()))
        self.logger.handlers.clear()  # Remove existing handlers

        self.metrics = {
            "jobs_inserted": 0,
            "jobs_skipped_as_duplicate": 0,
            "unique_fast_path": 0,
            "unique_slow_path": 0,
            "advisory_locks": 0,
            "inserts_by_kind": {},
        }

        if enable_console:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(getattr(logging, level.upper()))
            console_formatter = logging.Formatter(
                fmt='%(asctime)s | %(levelname)-8s | %(name)s | %(message)s',
                datefmt='%Y-%m-%d %H:%M:%S'
            )
            console_handler.setFormatter(console_formatter)
            self.logger.addHandler(console_handler)

        if enable_file and log_dir is not None:
            log_dir = Path(log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)

            log_file = log_dir / f"riverqueue_{datetime.now().strftime('%Y%m%d')}.log"
            file_handler = logging.FileHandler(log_file, encoding='utf-8')
            file_handler.setLevel(logging.DEBUG)  # Always log everything to file
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

    def _log(self, level: int, message: str, context: dict):
        if context:
            message = f"{message} | Context: {json.dumps(context, default=str)}"
        self.logger.log(level, message)

    # Metric tracking methods

    def record_insert(self, kind: str, skipped: bool):
        """Record an inserted job, or an existing one returned in its place."""
        if kind not in self.metrics["inserts_by_kind"]:
            self.metrics["inserts_by_kind"][kind] = {
                "inserted": 0,
                "skipped": 0,
            }

        if skipped:
            self.metrics["jobs_skipped_as_duplicate"] += 1
            self.metrics["inserts_by_kind"][kind]["skipped"] += 1
        else:
            self.metrics["jobs_inserted"] += 1
            self.metrics["inserts_by_kind"][kind]["inserted"] += 1

    def record_unique_path(self, path: str):
        """Record a unique insert taking the "fast" or "slow" path."""
        self.metrics[f"unique_{path}_path"] += 1

    def record_advisory_lock(self):
        self.metrics["advisory_locks"] += 1

    def get_metrics(self) -> dict:
        """Return current metrics."""
        metrics_copy = copy.deepcopy(self.metrics)
        for kind, stats in metrics_copy["inserts_by_kind"].items():
            total = stats["inserted"] + stats["skipped"]
            if total > 0:
                stats["duplicate_rate"] = round(stats["skipped"] / total, 3)

        return metrics_copy

    def log_metrics_summary(self):
        """Log a summary of current metrics."""
        metrics = self.get_metrics()

        self.info("=== Insert Metrics ===")
        self.info(f"Inserted: {metrics['jobs_inserted']}")
        self.info(f"Skipped as duplicate: {metrics['jobs_skipped_as_duplicate']}")
        self.info(f"Unique paths: fast={metrics['unique_fast_path']} slow={metrics['unique_slow_path']}")

        if metrics["inserts_by_kind"]:
            self.info("By kind:")
            for kind, stats in metrics["inserts_by_kind"].items():
                rate = stats.get("duplicate_rate", 0) * 100
                self.info(f"  {kind}: {stats['inserted']} inserted, {stats['skipped']} skipped ({rate:.1f}% duplicate)")


# Global logger instance
_global_logger: Optional[StructuredLogger] = None


def get_logger(
    name: str = "riverqueue",
    level: Optional[str] = None,
    **kwargs
) -> StructuredLogger:
    """
    Get or create the global logger instance.

    Level and log directory default to the RIVER_LOG_LEVEL and RIVER_LOG_DIR
    settings.

    Args:
        name: Logger name
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        **kwargs: Additional arguments passed to StructuredLogger

    Returns:
        StructuredLogger instance
    """
    global _global_logger

    if _global_logger is None:
        from .env import Settings

        settings = Settings.from_env()
        kwargs.setdefault("log_dir", settings.log_dir)
        _global_logger = StructuredLogger(name=name, level=level or settings.log_level, **kwargs)

    return _global_logger


def reset_logger():
    """Reset the global logger (useful for testing)."""
    global _global_logger
    _global_logger = None
