"""
Schema version guard for the advisory store.

Store content is only trusted when its recorded schema version is at least
MIN_SUPPORTED_VERSION. Anything older, including a missing or unreadable
store (both read as version 0), is discarded and rebuilt from the
initialization script. The rebuild is destructive: cached advisories are
reconstructed from upstream content by the update that follows.

A store that another process keeps locked is busy, not unreadable: the
guard raises StoreBusy instead of rebuilding it.
"""
import logging
from dataclasses import dataclass
from pathlib import Path

import duckdb

from errors import SchemaTooOld, StoreBusy

from .database import MIN_SUPPORTED_VERSION, Database, is_busy_error

logger = logging.getLogger(__name__)


@dataclass
class GuardResult:
    version_before: int
    version_after: int
    rebuilt: bool


class SchemaGuard:
    """Ensures the store at store_path has a supported schema."""

    def __init__(self, store_path, min_version: int = MIN_SUPPORTED_VERSION):
        self.store_path = Path(store_path)
        self.min_version = min_version

    @property
    def wal_path(self) -> Path:
        return self.store_path.with_name(self.store_path.name + ".wal")

    def read_version(self) -> int:
        """
        Recorded schema version; 0 if the store is absent or cannot be read.

        Raises:
            StoreBusy: If the store stays locked by another process
        """
        if not self.store_path.exists():
            return 0

        try:
            with Database(self.store_path) as db:
                return db.get_schema_version()
        except duckdb.Error as e:
            if is_busy_error(e):
                raise StoreBusy(f"Store {self.store_path} is locked by another process: {e}") from e
            logger.warning(f"Cannot read schema version from {self.store_path}: {e}")
            return 0
        except (TypeError, ValueError) as e:
            logger.warning(f"Cannot read schema version from {self.store_path}: {e}")
            return 0

    def check(self) -> int:
        """
        Raises:
            SchemaTooOld: If the store must be rebuilt
        """
        version = self.read_version()
        if version < self.min_version:
            raise SchemaTooOld(version, self.min_version)
        return version

    def rebuild(self):
        """Delete the store file and recreate it from the initialization script."""
        for path in (self.store_path, self.wal_path):
            if path.exists():
                path.unlink()

        self.store_path.parent.mkdir(parents=True, exist_ok=True)
        with Database(self.store_path) as db:
            db.initialize_schema()

    def ensure(self) -> GuardResult:
        """Check the schema version and rebuild the store if it is too old."""
        try:
            version = self.check()
            logger.info(f"Store schema version {version} is current")
            return GuardResult(version, version, rebuilt=False)
        except SchemaTooOld as e:
            if e.found:
                logger.warning(f"{e}; rebuilding store {self.store_path}")
            else:
                logger.info(f"No usable store at {self.store_path}; initializing")
            self.rebuild()
            return GuardResult(e.found, self.read_version(), rebuilt=True)
