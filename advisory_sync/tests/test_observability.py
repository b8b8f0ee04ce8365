"""
Lightweight validation tests for the observability layer.

These tests verify:
- SyncMetrics collects stage outcomes and serializes to dict
- QualityChecker flags an inconsistent store
- SyncReporter generates valid Markdown output
- configure_logging falls back to stdout when the log file is unwritable
"""
import logging
from datetime import datetime

from ingestion import AdvisoryRecord, TransportResult
from observability import QualityChecker, SyncMetrics, SyncReporter, configure_logging
from storage import AdvisoryLoader
from storage.applier import ApplyResult
from storage.schema_guard import GuardResult


def _metrics():
    metrics = SyncMetrics(run_id="test_run", started_at=datetime(2024, 1, 15, 12, 0))
    metrics.record_transport(TransportResult(
        "rsync", "mirror.example.org:/cert", datetime(2024, 1, 15, 12, 0),
        files_updated=4, files_deleted=1, attempts=2,
    ))
    metrics.record_guard(GuardResult(2, 3, rebuilt=True))
    metrics.record_apply(ApplyResult(
        last_update_before=0,
        last_update_after=0,
        documents_seen=5,
        documents_applied=3,
        documents_skipped_old=1,
        advisories_upserted=12,
        failed_documents=["broken.json"],
    ))
    metrics.completed_at = datetime(2024, 1, 15, 12, 0, 30)
    return metrics


def test_metrics_collects_stage_results():
    metrics = _metrics()

    assert metrics.transport == "rsync"
    assert metrics.transport_attempts == 2
    assert metrics.store_rebuilt is True
    assert metrics.documents_applied == 3
    assert metrics.errors == 1
    assert metrics.issues[0]["context"] == {"document": "broken.json"}
    assert metrics.duration_seconds == 30.0


def test_metrics_to_dict():
    data = _metrics().to_dict()

    assert data["run_id"] == "test_run"
    assert data["transport"]["files_updated"] == 4
    assert data["schema"] == {"version_before": 2, "version_after": 3, "rebuilt": True}
    assert data["documents"]["skipped_old"] == 1
    assert data["errors"] == 1
    assert data["completed_at"] == "2024-01-15T12:00:30"


def test_quality_checks_on_fresh_store(temp_db):
    results = {r.check_name: r for r in QualityChecker(temp_db).run_all_checks()}

    assert len(results) == 6
    assert results["schema_version"].passed
    assert not results["watermark"].passed
    assert results["cve_format"].passed
    assert results["orphan_cve_refs"].passed
    assert results["cve_ref_counts"].passed
    assert results["future_dated"].passed


def test_quality_checks_flag_problems(temp_db):
    AdvisoryLoader(temp_db).load_document("a.json", "d", 1.0, [
        AdvisoryRecord("A", "a.json", datetime(2024, 1, 1), cve_ids=["CVE-2024-0001", "CVE-24-1"]),
        AdvisoryRecord("B", "a.json", datetime(2999, 1, 1)),
    ], "run_1")
    conn = temp_db.connect()
    conn.execute("INSERT INTO advisory_cves VALUES ('GONE', 'CVE-2024-0002')")
    temp_db.set_last_update(1705320000)

    results = {r.check_name: r for r in QualityChecker(temp_db).run_all_checks()}

    assert results["watermark"].passed
    assert not results["cve_format"].passed
    assert results["cve_format"].details["invalid_count"] == 1
    assert not results["orphan_cve_refs"].passed
    assert results["cve_ref_counts"].passed
    assert not results["future_dated"].passed


def test_reporter_generates_markdown(temp_db, tmp_path):
    metrics = _metrics()
    quality_results = QualityChecker(temp_db).run_all_checks()
    reporter = SyncReporter()

    report = reporter.generate_report(metrics, quality_results)

    assert "# Advisory Sync Report" in report
    assert "**Run ID:** test_run" in report
    assert "## Transport" in report
    assert "## Store Checks" in report
    assert "## Errors" in report
    assert "document=broken.json" in report

    path = reporter.save_report(report, tmp_path / "reports")
    assert path.exists()
    assert path.name.startswith("sync-report-")
    assert path.read_text(encoding="utf-8") == report


def test_reporter_without_transport():
    metrics = SyncMetrics(run_id="refresh_run", started_at=datetime.utcnow(), mode="refresh")

    report = SyncReporter().generate_report(metrics, [])

    assert "## Transport" not in report
    assert "## Errors" not in report
    assert "**Mode:** refresh" in report


def test_logging_to_file(sync_config, reset_logging):
    handlers = configure_logging(sync_config)

    assert len(handlers) == 1
    assert isinstance(handlers[0], logging.FileHandler)

    logging.getLogger("advisory_sync.test").info("hello from the test")
    handlers[0].flush()
    assert "hello from the test" in sync_config.log_path.read_text()

    # Reconfiguring replaces rather than duplicates handlers
    configure_logging(sync_config)
    marked = [h for h in logging.getLogger().handlers if getattr(h, "_advisory_sync_handler", False)]
    assert len(marked) == 1


def test_logging_falls_back_to_stdout(tmp_path, sync_config, reset_logging, capsys):
    blocker = tmp_path / "not-a-directory"
    blocker.write_text("")
    config = sync_config.replace(log_dir=str(blocker))

    handlers = configure_logging(config, stream=None)

    assert len(handlers) == 1
    assert not isinstance(handlers[0], logging.FileHandler)
    assert "logging to stdout" in capsys.readouterr().out
