"""
Prerequisite checks run before any synchronization work.

Two capabilities are required:
- mirror transport: rsync and ssh executables, or the requests library
  for HTTP(S) archive repositories
- store engine: the duckdb library, able to open a connection
"""
import importlib
import logging
import shutil
from dataclasses import dataclass
from typing import Callable, List, Optional

from errors import FatalPrerequisite

logger = logging.getLogger(__name__)


@dataclass
class CapabilityResult:
    """Outcome of probing one external capability."""
    name: str
    available: bool
    detail: str


def is_archive_locator(repository: Optional[str]) -> bool:
    return bool(repository) and repository.lower().startswith(("http://", "https://"))


class PrerequisiteChecker:
    """
    Probes the capabilities the sync needs.

    The executable lookup and module import are injectable so the checker
    can be exercised without touching the host.
    """

    def __init__(
        self,
        which: Callable[[str], Optional[str]] = shutil.which,
        import_module: Callable = importlib.import_module,
    ):
        self.which = which
        self.import_module = import_module

    def check_executable(self, name: str) -> CapabilityResult:
        path = self.which(name)
        if path:
            return CapabilityResult(name, True, path)
        return CapabilityResult(name, False, f"{name} executable not found in PATH")

    def check_module(self, name: str) -> CapabilityResult:
        try:
            module = self.import_module(name)
        except ImportError as e:
            return CapabilityResult(name, False, f"cannot import {name}: {e}")
        version = getattr(module, "__version__", "unknown version")
        return CapabilityResult(name, True, f"{name} {version}")

    def check_store_engine(self) -> CapabilityResult:
        result = self.check_module("duckdb")
        if not result.available:
            return result

        duckdb = self.import_module("duckdb")
        try:
            conn = duckdb.connect(":memory:")
            conn.execute("SELECT 1").fetchone()
            conn.close()
        except Exception as e:
            return CapabilityResult("duckdb", False, f"duckdb cannot open a connection: {e}")
        return result

    def check_mirror(self, repository: Optional[str] = None) -> List[CapabilityResult]:
        """
        Probe the mirror transport for the given repository locator.

        With no locator (self-test before a credential exists) the rsync
        over ssh path is checked.
        """
        if is_archive_locator(repository):
            return [self.check_module("requests")]

        results = [self.check_executable("rsync")]
        if not (repository or "").startswith("rsync://"):
            results.append(self.check_executable("ssh"))
        return results

    def check_all(
        self,
        repository: Optional[str] = None,
        require_mirror: bool = True
    ) -> List[CapabilityResult]:
        results = []
        if require_mirror:
            results.extend(self.check_mirror(repository))
        results.append(self.check_store_engine())
        return results

    def require(self, repository: Optional[str] = None, require_mirror: bool = True) -> List[CapabilityResult]:
        """
        Run all checks and fail if any capability is missing.

        Raises:
            FatalPrerequisite: Listing every missing capability
        """
        results = self.check_all(repository, require_mirror)
        missing = [r for r in results if not r.available]
        for r in results:
            logger.debug(f"Capability {r.name}: {'ok' if r.available else 'missing'} ({r.detail})")

        if missing:
            details = "; ".join(r.detail for r in missing)
            raise FatalPrerequisite(f"Missing prerequisites: {details}")
        return results
