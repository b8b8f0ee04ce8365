"""
Observability layer for the advisory sync.

This module provides logging setup, metrics collection, store consistency
checks, and reporting for sync runs.

Main exports:
- configure_logging: Install file/stdout/syslog log handlers
- SyncMetrics: Tracks metrics for a sync run
- QualityChecker: Runs store consistency checks
- QualityCheckResult: Result of a check
- SyncReporter: Generates Markdown reports
"""
from .log_setup import configure_logging
from .metrics import SyncMetrics
from .quality_checks import QualityChecker, QualityCheckResult
from .reporter import SyncReporter

__all__ = [
    "configure_logging",
    "SyncMetrics",
    "QualityChecker",
    "QualityCheckResult",
    "SyncReporter",
]
