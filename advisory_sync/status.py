"""
Read-only status and self-test queries.

Nothing here writes to the staging directory or the store, so these
queries are safe to run at any time, including during a sync.
"""
from typing import List

from tabulate import tabulate

from access.credentials import credential_present, resolve_credential
from access.prerequisites import CapabilityResult, PrerequisiteChecker
from config import SyncConfig
from errors import MalformedCredential, MissingCredential

TOOL_NAME = "advisory-sync"
TOOL_VERSION = "1.0.0"
IDENTIFY_TAG = "ADVSYNC"


def _read_marker(path) -> str:
    try:
        return path.read_text().strip()
    except (OSError, UnicodeDecodeError):
        return ""


class FeedStatus:
    """Feed identity, installed version and environment health."""

    def __init__(self, config: SyncConfig, checker: PrerequisiteChecker = None):
        self.config = config
        self.checker = checker or PrerequisiteChecker()

    def describe(self) -> str:
        return (
            f"This script synchronizes a CERT advisory directory with the {self.config.feed_name}.\n"
            f"The {self.config.feed_name} is provided by {self.config.feed_vendor}.\n"
            f"Online information about this feed: '{self.config.feed_home}'."
        )

    def feed_version(self) -> str:
        """Upstream feed version marker, or an empty string if none is installed."""
        return _read_marker(self.config.feed_version_path)

    def last_sync(self) -> str:
        """Epoch seconds of the last successful sync, or an empty string."""
        return _read_marker(self.config.last_sync_path)

    def identify(self) -> str:
        restricted = 1 if credential_present(self.config.credential_file) else 0
        return "|".join([
            IDENTIFY_TAG,
            TOOL_NAME,
            TOOL_VERSION,
            self.config.feed_name,
            str(restricted),
            IDENTIFY_TAG,
        ])

    def selftest(self) -> List[CapabilityResult]:
        repository = None
        try:
            repository = resolve_credential(self.config.credential_file).repository
        except (MissingCredential, MalformedCredential):
            pass  # no credential yet: probe the default ssh transport
        return self.checker.check_all(repository)

    @staticmethod
    def format_selftest(results: List[CapabilityResult]) -> str:
        rows = [["✓" if r.available else "✗", r.name, r.detail] for r in results]
        return tabulate(rows, headers=["Status", "Capability", "Details"], tablefmt="github")
