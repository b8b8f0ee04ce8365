"""
Advisory record loader.

Writes the advisory records of one staged document into the store.
Each document is loaded in a single transaction together with its
applied_documents row, so a crash mid-document never leaves a half-written
advisory or a digest for content that was not applied.

Design decisions:
- INSERT OR REPLACE upserts keyed on advisory_id
- CVE references replaced per advisory (DELETE + INSERT)
- JSON serialization for references and raw payload
- Duplicate advisory ids within one document collapse to the newest entry
- A document transaction that hits a lock conflict is rolled back and retried
"""
import json
from datetime import datetime
from typing import Dict, List

from ingestion.base_parser import AdvisoryRecord
from .database import Database, retry_busy


def collapse_duplicates(records: List[AdvisoryRecord]) -> List[AdvisoryRecord]:
    """Keep one record per advisory_id, preferring the latest modification_time."""
    latest: Dict[str, AdvisoryRecord] = {}
    for record in records:
        current = latest.get(record.advisory_id)
        if current is None or record.modification_time >= current.modification_time:
            latest[record.advisory_id] = record
    return sorted(latest.values(), key=lambda r: r.advisory_id)


class AdvisoryLoader:
    """
    Loads advisory records into the store.

    For each document:
    1. Opens a transaction
    2. Upserts every advisory and replaces its CVE references
    3. Records the document digest in applied_documents
    4. Commits, or rolls back everything on error
    """

    def __init__(self, database: Database):
        """
        Initialize loader with database connection.

        Args:
            database: Database instance to load data into
        """
        self.db = database

    def load_document(
        self,
        name: str,
        digest: str,
        mtime: float,
        records: List[AdvisoryRecord],
        run_id: str
    ) -> int:
        """
        Apply one document's advisories.

        Args:
            name: Staged document name
            digest: sha256 of the document content
            mtime: Document filesystem modification time
            records: Advisory records to upsert (already filtered)
            run_id: Sync run identifier

        Returns:
            Number of advisories written

        Raises:
            StoreBusy: If the store stays locked past the retry budget
        """
        records = collapse_duplicates(records)
        retry_busy(lambda: self._write(name, digest, mtime, records, run_id), f"Applying {name}")
        return len(records)

    def _write(self, name, digest, mtime, records, run_id):
        with self.db.transaction() as conn:
            for record in records:
                self._upsert(conn, record, run_id)

            conn.execute("""
                INSERT OR REPLACE INTO applied_documents
                (name, digest, mtime, applied_at, advisory_count, run_id)
                VALUES (?, ?, ?, ?, ?, ?)
            """, [name, digest, mtime, datetime.utcnow(), len(records), run_id])

    def _upsert(self, conn, record: AdvisoryRecord, run_id: str):
        cve_ids = list(dict.fromkeys(record.cve_ids))
        conn.execute("""
            INSERT OR REPLACE INTO advisories
            (advisory_id, document, creation_time, modification_time, title, summary,
             cvss_score, severity, cve_refs, "references", raw_payload, run_id)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, [
            record.advisory_id,
            record.document,
            record.creation_time,
            record.modification_time,
            record.title,
            record.summary,
            record.cvss_score,
            record.severity,
            len(cve_ids),
            json.dumps(record.references),
            json.dumps(record.raw_payload, default=str),
            run_id
        ])

        conn.execute("DELETE FROM advisory_cves WHERE advisory_id = ?", [record.advisory_id])
        for cve_id in cve_ids:
            conn.execute(
                "INSERT INTO advisory_cves (advisory_id, cve_id) VALUES (?, ?)",
                [record.advisory_id, cve_id]
            )
