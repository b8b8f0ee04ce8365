"""
Shared pytest fixtures for advisory sync tests.

This module provides reusable fixtures that simplify test setup
and reduce code duplication across test modules.
"""
import json
import logging
import os
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent))

from config import SyncConfig
from storage import Database


@pytest.fixture
def sync_config(tmp_path):
    """
    Settings rooted in a temporary directory.

    Returns:
        SyncConfig with staging, credential and log paths under tmp_path
    """
    return SyncConfig(
        feed_dir=str(tmp_path / "cert-data"),
        credential_file=str(tmp_path / "access-key"),
        log_dir=str(tmp_path / "log"),
        syslog=False,
    )


@pytest.fixture
def credential_file(sync_config):
    """Write an rsync-over-ssh access credential and return its path."""
    path = Path(sync_config.credential_file)
    path.write_text("# feed access key\nfeed@mirror.example.org:/cert-data\n")
    return path


@pytest.fixture
def temp_db(tmp_path):
    """
    Create a temporary store with the schema initialized.

    Cleanup:
        Closes the connection after the test
    """
    db = Database(tmp_path / "store.duckdb")
    db.initialize_schema()
    yield db
    db.close()


@pytest.fixture
def write_bundle():
    """
    Return a helper that writes a JSON advisory bundle.

    The helper takes (directory, name, advisories, mtime=None) and sets the
    file's modification time to mtime (epoch seconds) when given.
    """
    def _write(directory, name, advisories, mtime=None):
        path = Path(directory) / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps({"advisories": advisories}))
        if mtime is not None:
            os.utime(path, (mtime, mtime))
        return path

    return _write


@pytest.fixture
def reset_logging():
    """Remove handlers installed by configure_logging after the test."""
    yield
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, "_advisory_sync_handler", False):
            root.removeHandler(handler)
            handler.close()
