"""
Storage layer for the advisory sync.

This module provides the local advisory store on DuckDB.

Components:
- Database: Connection management, schema initialization, meta and queries
- retry_busy: Bounded retry while another process holds the store lock
- SchemaGuard: Rebuilds the store when its schema version is too old
- AdvisoryLoader: Per-document transactional upserts
- UpdateApplier: Incremental reconciliation of staged documents
- SyncLock: Exclusive run lock

Usage:
    from storage import Database, SchemaGuard, UpdateApplier

    guard = SchemaGuard("cert.duckdb")
    guard.ensure()

    with Database("cert.duckdb") as db:
        result = UpdateApplier(db).apply(documents, run_started, run_id)
"""

from .applier import ApplyResult, UpdateApplier
from .database import MIN_SUPPORTED_VERSION, SCHEMA_VERSION, Database, retry_busy
from .loader import AdvisoryLoader
from .run_lock import SyncLock
from .schema_guard import GuardResult, SchemaGuard

__all__ = [
    "Database",
    "SCHEMA_VERSION",
    "MIN_SUPPORTED_VERSION",
    "retry_busy",
    "SchemaGuard",
    "GuardResult",
    "AdvisoryLoader",
    "UpdateApplier",
    "ApplyResult",
    "SyncLock",
]
