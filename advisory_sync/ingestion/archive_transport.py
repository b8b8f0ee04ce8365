"""
HTTP(S) archive mirror transport.

Downloads a zip archive of the whole corpus, validates and extracts it
into a temporary directory, and only then reconciles the staging
directory. A failure at any point before reconciliation leaves staging
exactly as it was.
"""
import calendar
import logging
import os
import shutil
import tempfile
import zipfile
from datetime import datetime
from pathlib import Path, PurePosixPath
from typing import Dict, Optional

import requests

from access.credentials import AccessCredential
from config import SyncConfig
from errors import TransportFailure

from .base_transport import MirrorTransport, TransportResult
from .http_client import HttpClient
from .staging import is_protected

logger = logging.getLogger(__name__)


class ArchiveTransport(MirrorTransport):
    """Mirror transport that pulls a zip archive over HTTP(S)."""

    name = "archive"

    def __init__(self, config: SyncConfig, client: Optional[HttpClient] = None):
        super().__init__(config)
        self.client = client

    def _client(self, credential: AccessCredential) -> HttpClient:
        if self.client is not None:
            return self.client
        # The access key's identity doubles as the archive account name
        return HttpClient(
            auth=(credential.identity, ""),
            proxy=self.config.proxy or None,
            timeout_seconds=self.config.transport_timeout,
        )

    def pull(self, credential: AccessCredential, staging_dir: Path) -> TransportResult:
        staging_dir = Path(staging_dir)
        result = TransportResult(
            transport=self.name,
            repository=credential.repository,
            started_at=datetime.utcnow(),
        )
        logger.info(f"Downloading {credential.repository}")

        with tempfile.TemporaryDirectory(prefix="advisory-sync-") as tmpdir:
            archive_path = Path(tmpdir) / "feed.zip"
            extract_dir = Path(tmpdir) / "feed"

            try:
                size = self._client(credential).download_to_file(credential.repository, archive_path)
            except requests.RequestException as e:
                raise TransportFailure(f"Archive download failed: {e}") from e
            logger.debug(f"Downloaded {size} bytes")

            members = self._extract(archive_path, extract_dir)
            staging_dir.mkdir(parents=True, exist_ok=True)
            result.files_updated = self._copy_changed(members, extract_dir, staging_dir)
            if self.config.mirror_delete:
                result.files_deleted = self._delete_absent(set(members), staging_dir)

        result.finished_at = datetime.utcnow()
        logger.info(
            f"Archive sync complete: {result.files_updated} updated, {result.files_deleted} deleted"
        )
        return result

    def _extract(self, archive_path: Path, extract_dir: Path) -> Dict[str, float]:
        """
        Extract the archive and return {relative name: modification epoch}.

        Raises:
            TransportFailure: If the archive is corrupt or holds unsafe paths
        """
        members: Dict[str, float] = {}
        try:
            with zipfile.ZipFile(archive_path, "r") as archive:
                bad = archive.testzip()
                if bad is not None:
                    raise TransportFailure(f"Corrupt archive member: {bad}")

                for info in archive.infolist():
                    if info.is_dir():
                        continue
                    name = PurePosixPath(info.filename)
                    if name.is_absolute() or ".." in name.parts:
                        raise TransportFailure(f"Unsafe path in archive: {info.filename}")
                    relative = name.as_posix()
                    if is_protected(relative, self.protected):
                        logger.warning(f"Ignoring archive member {relative}: protected local path")
                        continue

                    archive.extract(info, extract_dir)
                    members[relative] = float(calendar.timegm(info.date_time))
        except zipfile.BadZipFile as e:
            raise TransportFailure(f"Invalid feed archive: {e}") from e

        return members

    def _copy_changed(self, members: Dict[str, float], extract_dir: Path, staging_dir: Path) -> int:
        updated = 0
        for relative, mtime in sorted(members.items()):
            source = extract_dir / relative
            target = staging_dir / relative
            if target.is_file():
                stat = target.stat()
                if stat.st_size == source.stat().st_size and int(stat.st_mtime) == int(mtime):
                    continue

            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(source, target)
            os.utime(target, (mtime, mtime))
            updated += 1
        return updated

    def _delete_absent(self, remote: set, staging_dir: Path) -> int:
        deleted = 0
        for path in sorted(staging_dir.rglob("*")):
            if not path.is_file():
                continue
            relative = path.relative_to(staging_dir).as_posix()
            if relative in remote or is_protected(relative, self.protected):
                continue
            logger.debug(f"deleting {relative}")
            path.unlink()
            deleted += 1
        return deleted
