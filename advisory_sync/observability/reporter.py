"""
Generate human-readable sync reports in Markdown format.

This module provides SyncReporter, which transforms SyncMetrics and store
check results into formatted Markdown reports for operators.

Report sections:
- Header with run metadata (ID, mode, status, duration)
- Transport summary
- Store and schema summary
- Update applier counts
- Store consistency checks
- Errors

Design decisions:
- Markdown output for readability
- Tables rendered with tabulate in the "github" format
- One file per run, named after the UTC time it was written
"""
from datetime import datetime
from pathlib import Path
from typing import List

from tabulate import tabulate

from .metrics import SyncMetrics
from .quality_checks import QualityCheckResult


class SyncReporter:
    """Generates Markdown reports from sync run metrics."""

    def generate_report(
        self,
        metrics: SyncMetrics,
        quality_results: List[QualityCheckResult]
    ) -> str:
        """
        Generate full run report in Markdown format.

        Args:
            metrics: SyncMetrics object from a finished sync run
            quality_results: List of store check results

        Returns:
            Markdown-formatted report as string
        """
        lines = []

        lines.append("# Advisory Sync Report")
        lines.append(f"**Run ID:** {metrics.run_id}")
        lines.append(f"**Mode:** {metrics.mode}")
        lines.append(f"**Status:** {metrics.status}")
        lines.append(f"**Started:** {metrics.started_at.isoformat()}")
        if metrics.completed_at:
            lines.append(f"**Duration:** {metrics.duration_seconds:.1f} seconds")
        lines.append("")

        if metrics.transport:
            lines.append("## Transport")
            transport_data = [
                ["Transport", metrics.transport],
                ["Attempts", metrics.transport_attempts],
                ["Files Updated", metrics.files_updated],
                ["Files Deleted", metrics.files_deleted],
            ]
            lines.append(tabulate(transport_data, headers=["Metric", "Value"], tablefmt="github"))
            lines.append("")

        lines.append("## Store")
        store_data = [
            ["Schema Version", f"{metrics.schema_version_before} → {metrics.schema_version_after}"],
            ["Rebuilt", "yes" if metrics.store_rebuilt else "no"],
            ["Advisories", metrics.advisories_total],
            ["Watermark", f"{metrics.last_update_before} → {metrics.last_update_after}"],
        ]
        lines.append(tabulate(store_data, headers=["Metric", "Value"], tablefmt="github"))
        lines.append("")

        lines.append("## Updates")
        update_data = [
            ["Documents Seen", metrics.documents_seen],
            ["Documents Applied", metrics.documents_applied],
            ["Skipped (older than watermark)", metrics.documents_skipped_old],
            ["Skipped (unchanged)", metrics.documents_unchanged],
            ["Advisories Written", metrics.advisories_upserted],
            ["Advisories Already Current", metrics.advisories_filtered],
            ["Errors", metrics.errors],
        ]
        lines.append(tabulate(update_data, headers=["Metric", "Value"], tablefmt="github"))
        lines.append("")

        lines.append("## Store Checks")
        quality_data = []
        for qr in quality_results:
            status = "✓" if qr.passed else "✗"
            quality_data.append([status, qr.check_name, qr.message])
        lines.append(tabulate(quality_data, headers=["Status", "Check", "Details"], tablefmt="github"))
        lines.append("")

        if metrics.issues:
            lines.append("## Errors")
            issue_data = [
                [issue["message"], ", ".join(f"{k}={v}" for k, v in issue["context"].items())]
                for issue in metrics.issues
            ]
            lines.append(tabulate(issue_data, headers=["Error", "Context"], tablefmt="github"))
            lines.append("")

        return "\n".join(lines)

    def save_report(self, report: str, output_dir: Path) -> Path:
        """
        Save report to file with timestamp.

        Args:
            report: Markdown report content
            output_dir: Directory to save report in

        Returns:
            Path to saved report file
        """
        output_dir.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.utcnow().strftime("%Y%m%d-%H%M%S")
        filepath = output_dir / f"sync-report-{timestamp}.md"
        filepath.write_text(report, encoding="utf-8")
        return filepath
