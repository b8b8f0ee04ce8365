#!/usr/bin/env python3
"""
Main orchestrator for the advisory feed sync.

A full sync runs these stages in order, each to completion:
1. Gates: resolve the access credential and check prerequisites
2. Lock: take the exclusive run lock
3. Transport: mirror the remote corpus into the staging directory
4. Schema guard: rebuild the store if its schema is missing or too old
5. Update: apply staged documents newer than the watermark
6. Checks and reporting

--refresh runs stages 2, 4, 5 and 6 only. The status flags (--describe,
--feedversion, --identify, --lastsync, --selftest) are read-only.

Usage:
    python run_sync.py [--config path/to/config.yaml] [--refresh | --selftest | ...]
"""
import argparse
import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import Callable, Optional

# Add project root to Python path
sys.path.insert(0, str(Path(__file__).parent))

from access.credentials import resolve_credential
from access.prerequisites import PrerequisiteChecker
from config import DEFAULT_CONFIG_PATH, SyncConfig, load_config
from errors import ConfigError, IncompleteStaging, SyncError
from ingestion.base_transport import protected_paths
from ingestion.staging import scan_staging
from ingestion.transports import build_transport
from observability.log_setup import configure_logging
from observability.metrics import SyncMetrics
from observability.quality_checks import QualityChecker
from observability.reporter import SyncReporter
from status import FeedStatus
from storage.applier import UpdateApplier
from storage.database import Database
from storage.run_lock import SyncLock
from storage.schema_guard import SchemaGuard

logger = logging.getLogger(__name__)


class AdvisorySync:
    """
    Orchestrates sync and refresh runs.

    Design decisions:
    - The config is immutable and shared by every stage
    - Gates run before anything is written, including the lock file
    - Transport failures abort before the store is opened and leave a
      transport-incomplete marker that makes --refresh refuse to run
      until a full sync succeeds
    - The watermark is only advanced by the update stage after a fully
      successful batch
    """

    def __init__(
        self,
        config: SyncConfig,
        checker: Optional[PrerequisiteChecker] = None,
        transport_factory: Callable = build_transport,
    ):
        self.config = config
        self.checker = checker or PrerequisiteChecker()
        self.transport_factory = transport_factory
        self.reporter = SyncReporter()
        self.quality_results = []

    def _new_metrics(self, mode: str) -> SyncMetrics:
        self.quality_results = []
        started = datetime.utcnow()
        run_id = f"run_{started.strftime('%Y%m%d_%H%M%S')}"
        return SyncMetrics(run_id=run_id, started_at=started, mode=mode)

    def sync(self) -> SyncMetrics:
        """
        Execute a full sync: transport, schema guard, incremental update.

        Returns:
            SyncMetrics; status is "success", "failed" or "disabled"

        Raises:
            SyncError: For fatal conditions (credential, prerequisites, lock, transport)
        """
        metrics = self._new_metrics("sync")
        if not self.config.enabled:
            logger.info("Synchronization is disabled in the settings; nothing to do")
            metrics.status = "disabled"
            return metrics

        logger.info(f"=== Starting sync run {metrics.run_id} ===")
        try:
            credential = resolve_credential(self.config.credential_file)
            self.checker.require(credential.repository)

            with SyncLock(self.config.lock_path):
                transport = self.transport_factory(self.config, credential)
                logger.info(f"Stage 1: Mirroring feed via {transport.name}")
                self._mark_transport_incomplete()
                metrics.record_transport(transport.pull(credential, self.config.feed_path))
                self.config.transport_marker_path.unlink()

                self._update(metrics)
        except SyncError as e:
            self._fail(metrics, e)
            raise
        finally:
            self._finish(metrics)

        return metrics

    def refresh(self) -> SyncMetrics:
        """Apply already staged documents without contacting upstream."""
        metrics = self._new_metrics("refresh")
        if not self.config.enabled:
            logger.info("Synchronization is disabled in the settings; nothing to do")
            metrics.status = "disabled"
            return metrics

        logger.info(f"=== Starting refresh run {metrics.run_id} ===")
        try:
            self.checker.require(require_mirror=False)
            with SyncLock(self.config.lock_path):
                if self.config.transport_marker_path.exists():
                    raise IncompleteStaging(
                        "The last mirror transfer did not complete; run a full sync before refreshing"
                    )
                self._update(metrics)
        except SyncError as e:
            self._fail(metrics, e)
            raise
        finally:
            self._finish(metrics)

        return metrics

    def _update(self, metrics: SyncMetrics):
        """Schema guard, incremental update, marker file and store checks."""
        logger.info("Stage 2: Checking store schema")
        guard = SchemaGuard(self.config.store_path)
        metrics.record_guard(guard.ensure())

        logger.info("Stage 3: Applying staged documents")
        documents = scan_staging(self.config.feed_path, protected_paths(self.config))

        with Database(self.config.store_path) as db:
            result = UpdateApplier(db).apply(documents, metrics.started_at, metrics.run_id)
            metrics.record_apply(result)
            metrics.advisories_total = db.count_advisories()

            if result.succeeded:
                metrics.status = "success"
                self._write_last_sync(result.last_update_after)
            else:
                metrics.status = "failed"

            self.quality_results = QualityChecker(db).run_all_checks()
            for check in self.quality_results:
                if not check.passed:
                    logger.warning(f"Store check {check.check_name} failed: {check.message}")

            metrics.completed_at = datetime.utcnow()
            db.record_run(
                metrics.run_id,
                metrics.started_at,
                metrics.completed_at,
                metrics.status,
                metrics.documents_applied,
                metrics.advisories_upserted,
                metrics.errors,
                metrics.to_dict(),
            )

    def _mark_transport_incomplete(self):
        marker = self.config.transport_marker_path
        marker.parent.mkdir(parents=True, exist_ok=True)
        marker.write_text(f"{datetime.utcnow().isoformat()}\n")

    def _write_last_sync(self, last_update: int):
        marker = self.config.last_sync_path
        marker.parent.mkdir(parents=True, exist_ok=True)
        marker.write_text(f"{last_update}\n")

    def _fail(self, metrics: SyncMetrics, error: Exception):
        metrics.status = "failed"
        metrics.record_error(str(error), context={"error": type(error).__name__})
        logger.error(f"Sync run {metrics.run_id} failed: {error}")

    def _finish(self, metrics: SyncMetrics):
        if metrics.status == "running":
            metrics.status = "failed"
        if metrics.completed_at is None:
            metrics.completed_at = datetime.utcnow()

        logger.info(f"=== Run {metrics.run_id} {metrics.status} ===")
        logger.info(f"Duration: {metrics.duration_seconds:.1f}s")
        logger.info(
            f"Documents applied: {metrics.documents_applied}, "
            f"advisories written: {metrics.advisories_upserted}, "
            f"total advisories: {metrics.advisories_total}"
        )

        if self.config.report_dir:
            report = self.reporter.generate_report(metrics, self.quality_results)
            report_path = self.reporter.save_report(report, Path(self.config.report_dir))
            logger.info(f"Report: {report_path}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="advisory-sync",
        description="Synchronize the local CERT advisory store with the upstream feed. "
                    "Without an option a full sync is run."
    )
    parser.add_argument(
        "--config",
        default=os.environ.get("ADVISORY_SYNC_CONFIG", DEFAULT_CONFIG_PATH),
        help=f"Path to settings file (default: {DEFAULT_CONFIG_PATH})"
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--describe", action="store_true", help="print feed name, vendor and home page")
    mode.add_argument("--feedversion", action="store_true", help="print the installed feed version")
    mode.add_argument("--identify", action="store_true", help="print a machine-readable identity line")
    mode.add_argument("--lastsync", action="store_true", help="print the watermark of the last successful sync")
    mode.add_argument("--refresh", action="store_true", help="apply staged documents without mirroring")
    mode.add_argument("--selftest", action="store_true", help="check prerequisites and exit")
    return parser


def main(argv=None) -> int:
    """CLI entry point. Returns the process exit code."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"advisory-sync: {e}", file=sys.stderr)
        return 1

    status = FeedStatus(config)
    if args.describe:
        print(status.describe())
        return 0
    if args.feedversion:
        print(status.feed_version())
        return 0
    if args.identify:
        print(status.identify())
        return 0
    if args.lastsync:
        print(status.last_sync())
        return 0
    if args.selftest:
        results = status.selftest()
        print(FeedStatus.format_selftest(results))
        return 0 if all(r.available for r in results) else 1

    configure_logging(config)
    sync = AdvisorySync(config)

    try:
        metrics = sync.refresh() if args.refresh else sync.sync()
    except SyncError as e:
        print(f"advisory-sync: {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.error(f"Unexpected failure: {e}", exc_info=True)
        print(f"advisory-sync: unexpected failure: {e}", file=sys.stderr)
        return 1

    return 1 if metrics.status == "failed" else 0


if __name__ == "__main__":
    sys.exit(main())
