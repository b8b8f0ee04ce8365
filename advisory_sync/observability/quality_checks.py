"""
Consistency checks for the advisory store.

This module implements QualityChecker, which runs SQL-based validation
checks against the store after each sync run.

Checks implemented:
- Schema version: recorded version must be supported
- Watermark: last_update must be set after a successful sync
- CVE format: stored CVE ids look like CVE-YYYY-NNNN
- Orphan CVE references: every advisory_cves row needs its advisory
- CVE reference counts: advisories.cve_refs must match advisory_cves
- Future-dated advisories: modification_time more than a day ahead

Design decisions:
- A check never raises for bad data; it reports it in its QualityCheckResult
- Checks are read-only and never repair anything
"""
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, List

from errors import InconsistentStore
from storage.database import MIN_SUPPORTED_VERSION


@dataclass
class QualityCheckResult:
    """
    Result of a single quality check.

    Attributes:
        check_name: Unique identifier for the check
        passed: True if check passed, False otherwise
        message: Human-readable summary of the result
        details: Optional dict with additional context (e.g., counts)
    """
    check_name: str
    passed: bool
    message: str
    details: Dict[str, Any] = None


class QualityChecker:
    """
    Runs consistency checks against the store.

    Each check method executes a query against the database and returns
    a QualityCheckResult indicating pass/fail status.
    """

    def __init__(self, database):
        """
        Initialize quality checker.

        Args:
            database: Database instance with active connection
        """
        self.db = database

    def run_all_checks(self) -> List[QualityCheckResult]:
        """
        Run all quality checks.

        Returns:
            List of QualityCheckResult objects, one per check
        """
        return [
            self.check_schema_version(),
            self.check_watermark(),
            self.check_cve_format(),
            self.check_orphan_cve_refs(),
            self.check_cve_ref_counts(),
            self.check_future_dated(),
        ]

    def check_schema_version(self) -> QualityCheckResult:
        version = self.db.get_schema_version()
        return QualityCheckResult(
            check_name="schema_version",
            passed=version >= MIN_SUPPORTED_VERSION,
            message=f"Schema version {version} (minimum {MIN_SUPPORTED_VERSION})",
            details={"version": version}
        )

    def check_watermark(self) -> QualityCheckResult:
        """The watermark must be a positive epoch once a sync has completed."""
        try:
            last_update = self.db.get_last_update()
        except InconsistentStore as e:
            return QualityCheckResult("watermark", False, str(e), {"last_update": None})

        return QualityCheckResult(
            check_name="watermark",
            passed=last_update > 0,
            message=f"last_update={last_update}" if last_update > 0 else "Watermark never advanced",
            details={"last_update": last_update}
        )

    def check_cve_format(self) -> QualityCheckResult:
        """
        Check that all CVE IDs match the expected format: CVE-YYYY-NNNN+.

        Uses SQL SIMILAR TO (regex) for format validation.
        """
        conn = self.db.connect()
        result = conn.execute("""
            SELECT count(*) FROM advisory_cves
            WHERE cve_id NOT SIMILAR TO 'CVE-[0-9]{4}-[0-9]{4,}'
        """).fetchone()[0]

        return QualityCheckResult(
            check_name="cve_format",
            passed=result == 0,
            message=f"{result} invalid CVE formats" if result > 0 else "All CVE IDs valid",
            details={"invalid_count": result}
        )

    def check_orphan_cve_refs(self) -> QualityCheckResult:
        conn = self.db.connect()
        result = conn.execute("""
            SELECT count(*) FROM advisory_cves c
            LEFT JOIN advisories a ON a.advisory_id = c.advisory_id
            WHERE a.advisory_id IS NULL
        """).fetchone()[0]

        return QualityCheckResult(
            check_name="orphan_cve_refs",
            passed=result == 0,
            message=f"{result} CVE references without advisory" if result > 0 else "No orphan CVE references",
            details={"orphan_count": result}
        )

    def check_cve_ref_counts(self) -> QualityCheckResult:
        """
        Ensure the cve_refs column agrees with advisory_cves.

        A mismatch means an advisory was only partly written.
        """
        conn = self.db.connect()
        result = conn.execute("""
            SELECT count(*) FROM advisories a
            WHERE a.cve_refs <> (
                SELECT count(*) FROM advisory_cves c WHERE c.advisory_id = a.advisory_id
            )
        """).fetchone()[0]

        return QualityCheckResult(
            check_name="cve_ref_counts",
            passed=result == 0,
            message=f"{result} advisories with mismatched CVE counts" if result > 0 else "CVE counts consistent",
            details={"mismatch_count": result}
        )

    def check_future_dated(self) -> QualityCheckResult:
        """
        Detect advisories modified more than a day in the future.

        Future dates push the reference date forward and would hide later
        upstream updates. Usually caused by clock skew upstream.
        """
        horizon = datetime.utcnow() + timedelta(days=1)
        conn = self.db.connect()
        result = conn.execute(
            "SELECT count(*) FROM advisories WHERE modification_time > ?", [horizon]
        ).fetchone()[0]

        return QualityCheckResult(
            check_name="future_dated",
            passed=result == 0,
            message=f"{result} advisories dated in the future" if result > 0 else "No future-dated advisories",
            details={"future_count": result}
        )
