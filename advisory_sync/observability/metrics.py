"""
Metrics collection for sync runs.

This module provides SyncMetrics, a dataclass that tracks the observable
outcome of a single sync execution including:
- Transport statistics (files updated/deleted, attempts)
- Schema guard outcome (versions, whether the store was rebuilt)
- Update applier counts (documents applied/skipped, advisories written)
- Watermark before and after the run
- Errors encountered

Design decisions:
- Single metrics object per run
- Stages fill in their own section via record_* helpers
- Serializable to_dict() for storage in the sync_runs table
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List


@dataclass
class SyncMetrics:
    """
    Metrics for a single sync run.

    Designed to be serialized to JSON for storage in the sync_runs table.
    """
    run_id: str
    started_at: datetime
    completed_at: datetime = None
    mode: str = "sync"              # sync | refresh
    status: str = "running"         # running | success | failed

    # Transport
    transport: str = ""
    files_updated: int = 0
    files_deleted: int = 0
    transport_attempts: int = 0

    # Schema guard
    schema_version_before: int = 0
    schema_version_after: int = 0
    store_rebuilt: bool = False

    # Update applier
    documents_seen: int = 0
    documents_applied: int = 0
    documents_skipped_old: int = 0
    documents_unchanged: int = 0
    advisories_upserted: int = 0
    advisories_filtered: int = 0
    advisories_total: int = 0
    last_update_before: int = 0
    last_update_after: int = 0

    errors: int = 0
    issues: List[Dict] = field(default_factory=list)

    def record_transport(self, result):
        self.transport = result.transport
        self.files_updated = result.files_updated
        self.files_deleted = result.files_deleted
        self.transport_attempts = result.attempts

    def record_guard(self, result):
        self.schema_version_before = result.version_before
        self.schema_version_after = result.version_after
        self.store_rebuilt = result.rebuilt

    def record_apply(self, result):
        self.documents_seen = result.documents_seen
        self.documents_applied = result.documents_applied
        self.documents_skipped_old = result.documents_skipped_old
        self.documents_unchanged = result.documents_unchanged
        self.advisories_upserted = result.advisories_upserted
        self.advisories_filtered = result.advisories_filtered
        self.last_update_before = result.last_update_before
        self.last_update_after = result.last_update_after
        for name in result.failed_documents:
            self.record_error("Document failed to apply", context={"document": name})

    def record_error(self, error: str, context: Dict = None):
        """
        Record an error encountered during the run.

        Args:
            error: Error message
            context: Optional dict with additional context (e.g., document name)
        """
        self.errors += 1
        self.issues.append({
            "type": "error",
            "message": error,
            "context": context or {}
        })

    @property
    def duration_seconds(self) -> float:
        if not self.completed_at:
            return 0.0
        return (self.completed_at - self.started_at).total_seconds()

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert metrics to dictionary for JSON serialization.

        Returns:
            Dictionary representation suitable for JSON storage
        """
        return {
            "run_id": self.run_id,
            "mode": self.mode,
            "status": self.status,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "transport": {
                "name": self.transport,
                "files_updated": self.files_updated,
                "files_deleted": self.files_deleted,
                "attempts": self.transport_attempts,
            },
            "schema": {
                "version_before": self.schema_version_before,
                "version_after": self.schema_version_after,
                "rebuilt": self.store_rebuilt,
            },
            "documents": {
                "seen": self.documents_seen,
                "applied": self.documents_applied,
                "skipped_old": self.documents_skipped_old,
                "unchanged": self.documents_unchanged,
            },
            "advisories_upserted": self.advisories_upserted,
            "advisories_filtered": self.advisories_filtered,
            "advisories_total": self.advisories_total,
            "last_update_before": self.last_update_before,
            "last_update_after": self.last_update_after,
            "errors": self.errors,
            "issues": self.issues
        }
