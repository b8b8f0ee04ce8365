"""
Base interface for mirror transports.

A transport reconciles the local staging directory with the remote corpus.
Reconciliation mirrors additions, changes and (per the deletion policy)
removals, but never deletes the protected local paths: the store file, its
write-ahead log, and the private subdirectory.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from access.credentials import AccessCredential
from config import SyncConfig


@dataclass
class TransportResult:
    """Outcome of a successful pull."""
    transport: str
    repository: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    files_updated: int = 0
    files_deleted: int = 0
    attempts: int = 1
    output: str = ""


def protected_paths(config: SyncConfig) -> List[str]:
    """Relative staging paths that mirror reconciliation must never delete."""
    return [
        config.store_name,
        config.store_name + ".wal",
        config.private_subdir.rstrip("/") + "/",
    ]


class MirrorTransport(ABC):
    """
    Abstract base class for mirror transports.

    Implementations must raise TransportFailure on any authentication,
    connectivity or protocol error; they never retry on their own.
    """

    name: str = ""

    def __init__(self, config: SyncConfig):
        self.config = config

    @property
    def protected(self) -> List[str]:
        return protected_paths(self.config)

    @abstractmethod
    def pull(self, credential: AccessCredential, staging_dir: Path) -> TransportResult:
        """
        Reconcile staging_dir with the remote corpus.

        Args:
            credential: Identity and repository to pull from
            staging_dir: Local staging directory (created if missing)

        Returns:
            TransportResult describing the transfer

        Raises:
            TransportFailure: On any transfer error
        """
        pass
