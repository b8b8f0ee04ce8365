"""
Database connection and schema management for the advisory store.

This module provides:
- DuckDB connection lifecycle management
- Schema creation from the storage/schema.sql initialization script
- Feed metadata (schema version, last_update watermark, reference date) accessors
- Bounded retry while another process holds the store lock
- Read-only advisory queries

Design decisions:
- DuckDB single-file store living inside the staging directory
- The initialization script is the only place tables are defined; a
  store that is too old is rebuilt from it, never migrated
- Watermark stored as epoch seconds in the meta table
- Reference date stored as an ISO timestamp in the meta table, advanced
  together with the watermark
- Naive UTC datetimes in TIMESTAMP columns
"""
import json
import logging
import time
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, TypeVar

import duckdb

from errors import InconsistentStore, StoreBusy
from ingestion.timeparse import EPOCH

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 4
MIN_SUPPORTED_VERSION = SCHEMA_VERSION
SCHEMA_SCRIPT = Path(__file__).parent / "schema.sql"

BUSY_RETRY_ATTEMPTS = 5
BUSY_RETRY_DELAY_SECONDS = 0.5

T = TypeVar("T")


def split_script(script: str) -> List[str]:
    """Split an SQL script into statements, dropping '--' comment lines."""
    lines = [line for line in script.splitlines() if not line.strip().startswith("--")]
    return [s.strip() for s in "\n".join(lines).split(";") if s.strip()]


def is_busy_error(error: Exception) -> bool:
    """True for DuckDB errors caused by another process or transaction holding the store."""
    message = str(error).lower()
    if isinstance(error, duckdb.IOException):
        return "could not set lock" in message or "conflicting lock" in message
    if isinstance(error, duckdb.TransactionException):
        return "conflict" in message
    return False


def retry_busy(
    operation: Callable[[], T],
    description: str = "store operation",
    attempts: Optional[int] = None,
    delay: Optional[float] = None,
    sleep: Callable[[float], None] = None,
) -> T:
    """
    Run operation, retrying while the store is busy.

    The delay doubles after every busy attempt. Errors that are not lock
    conflicts propagate immediately.

    Raises:
        StoreBusy: If the store is still busy after the last attempt
    """
    attempts = BUSY_RETRY_ATTEMPTS if attempts is None else attempts
    delay = BUSY_RETRY_DELAY_SECONDS if delay is None else delay
    sleep = sleep or time.sleep

    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except duckdb.Error as e:
            if not is_busy_error(e):
                raise
            if attempt >= attempts:
                raise StoreBusy(f"{description} still blocked after {attempts} attempts: {e}") from e
            wait = delay * 2 ** (attempt - 1)
            logger.warning(f"{description} blocked ({e}); retrying in {wait:.1f}s")
            sleep(wait)


class Database:
    """
    Manages the DuckDB store connection and schema.

    This class is responsible for:
    - Creating and maintaining a single database connection
    - Running the initialization script on a fresh store
    - Reading and writing the meta table
    - Recording sync run outcomes
    """

    def __init__(self, db_path="cert.duckdb", read_only: bool = False):
        """
        Initialize database manager.

        Args:
            db_path: Path to DuckDB store file (created if it doesn't exist)
            read_only: Open the store without write access
        """
        self.db_path = str(db_path)
        self.read_only = read_only
        self.conn: Optional[duckdb.DuckDBPyConnection] = None

    def connect(self) -> duckdb.DuckDBPyConnection:
        """
        Get or create database connection.

        Returns:
            Active DuckDB connection

        Raises:
            StoreBusy: If another process keeps the store locked
        """
        if self.conn is None:
            self.conn = retry_busy(
                lambda: duckdb.connect(self.db_path, read_only=self.read_only),
                f"Opening store {self.db_path}",
            )
        return self.conn

    def close(self):
        """Close database connection."""
        if self.conn:
            self.conn.close()
            self.conn = None

    def initialize_schema(self, script_path: Path = SCHEMA_SCRIPT):
        """
        Run the initialization script in full.

        Only meant for an empty store: the script inserts the meta rows.
        """
        conn = self.connect()
        for statement in split_script(Path(script_path).read_text()):
            conn.execute(statement)

    @contextmanager
    def transaction(self) -> Iterator[duckdb.DuckDBPyConnection]:
        """Run a block in one transaction, rolling back on any error."""
        conn = self.connect()
        conn.begin()
        try:
            yield conn
        except BaseException:
            conn.rollback()
            raise
        conn.commit()

    # Meta table

    def _get_meta(self, name: str) -> Optional[str]:
        row = self.connect().execute(
            "SELECT value FROM meta WHERE name = ?", [name]
        ).fetchone()
        return row[0] if row else None

    def set_meta(self, name: str, value: Any):
        self.connect().execute(
            "INSERT OR REPLACE INTO meta (name, value) VALUES (?, ?)", [name, str(value)]
        )

    def get_schema_version(self) -> int:
        return int(self._get_meta("database_version"))

    def get_last_update(self) -> int:
        """
        Read the last_update watermark.

        Raises:
            InconsistentStore: If the watermark is missing or not an integer
        """
        value = self._get_meta("last_update")
        if value is None:
            raise InconsistentStore("Watermark last_update is not set")
        try:
            return int(value)
        except ValueError as e:
            raise InconsistentStore(f"Watermark last_update is invalid: {value!r}") from e

    def set_last_update(self, epoch_seconds: int):
        self.set_meta("last_update", int(epoch_seconds))

    def get_reference_date(self) -> datetime:
        """
        Read the reference date: the newest modification_time seen by the
        last fully successful batch.

        Raises:
            InconsistentStore: If the reference date is missing or invalid
        """
        value = self._get_meta("reference_date")
        if value is None:
            raise InconsistentStore("Reference date is not set")
        try:
            return datetime.fromisoformat(value)
        except ValueError as e:
            raise InconsistentStore(f"Reference date is invalid: {value!r}") from e

    def set_reference_date(self, moment: datetime):
        self.set_meta("reference_date", moment.isoformat())

    # Advisory queries

    def newest_modification_time(self) -> datetime:
        """Most recent advisory modification_time, or the epoch for an empty store."""
        row = self.connect().execute(
            "SELECT max(modification_time) FROM advisories"
        ).fetchone()
        return row[0] if row and row[0] is not None else EPOCH

    def count_advisories(self) -> int:
        return self.connect().execute("SELECT count(*) FROM advisories").fetchone()[0]

    def get_advisory(self, advisory_id: str) -> Optional[Dict[str, Any]]:
        """
        Get one advisory with its CVE list.

        Returns:
            Dictionary of advisory fields, or None if it does not exist
        """
        conn = self.connect()
        result = conn.execute(
            "SELECT * FROM advisories WHERE advisory_id = ?", [advisory_id]
        ).fetchone()
        if not result:
            return None

        columns = [desc[0] for desc in conn.description]
        advisory = dict(zip(columns, result))
        for json_field in ("references", "raw_payload"):
            if isinstance(advisory.get(json_field), str):
                advisory[json_field] = json.loads(advisory[json_field])

        advisory["cve_ids"] = [
            row[0] for row in conn.execute(
                "SELECT cve_id FROM advisory_cves WHERE advisory_id = ? ORDER BY cve_id",
                [advisory_id]
            ).fetchall()
        ]
        return advisory

    def advisories_for_cve(self, cve_id: str) -> List[str]:
        """Ids of all advisories that reference the given CVE."""
        rows = self.connect().execute("""
            SELECT DISTINCT advisory_id FROM advisory_cves
            WHERE cve_id = ?
            ORDER BY advisory_id
        """, [cve_id]).fetchall()
        return [row[0] for row in rows]

    def get_applied_digest(self, name: str) -> Optional[str]:
        row = self.connect().execute(
            "SELECT digest FROM applied_documents WHERE name = ?", [name]
        ).fetchone()
        return row[0] if row else None

    def record_run(
        self,
        run_id: str,
        started_at: datetime,
        completed_at: Optional[datetime],
        status: str,
        documents_applied: int,
        advisories_upserted: int,
        errors: int,
        metadata: Dict[str, Any]
    ):
        """Store the outcome of a sync run in sync_runs."""
        self.connect().execute("""
            INSERT OR REPLACE INTO sync_runs
            (run_id, started_at, completed_at, status, documents_applied,
             advisories_upserted, errors, metadata)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, [
            run_id,
            started_at,
            completed_at,
            status,
            documents_applied,
            advisories_upserted,
            errors,
            json.dumps(metadata, default=str)
        ])

    def __enter__(self):
        """Context manager entry."""
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()
