"""
rsync mirror transport.

Pulls the corpus with rsync, either over ssh (locator "host:/path") or
from an rsync daemon (locator "rsync://host/module"). Protected paths are
guarded with rsync protect filters so --delete never removes them.

Updated files are collected in a per-directory partial dir and only
renamed into place once the whole transfer succeeded (--delay-updates),
so a failed pull never leaves truncated files under their real names.
"""
import logging
import os
import re
import shlex
import subprocess
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List

from access.credentials import AccessCredential
from config import SyncConfig
from errors import TransportFailure

from .base_transport import MirrorTransport, TransportResult

logger = logging.getLogger(__name__)

# rsync exit codes worth naming in operator diagnostics
RSYNC_EXIT_REASONS = {
    1: "syntax or usage error",
    2: "protocol incompatibility",
    5: "error starting client-server protocol (authentication?)",
    10: "error in socket I/O",
    12: "error in rsync protocol data stream",
    23: "partial transfer due to error",
    24: "partial transfer due to vanished source files",
    30: "timeout in data send/receive",
    35: "timeout waiting for daemon connection",
    255: "ssh connection failed",
}

PARTIAL_DIR = ".rsync-partial"

_TRANSFERRED = re.compile(r"Number of regular files transferred:\s*([\d,]+)")


class RsyncTransport(MirrorTransport):
    """Mirror transport backed by the rsync executable."""

    name = "rsync"

    def __init__(self, config: SyncConfig, runner: Callable = subprocess.run):
        super().__init__(config)
        self.runner = runner

    def source_url(self, credential: AccessCredential) -> str:
        repository = credential.repository.rstrip("/")
        if repository.startswith("rsync://"):
            return f"rsync://{credential.identity}@{repository[len('rsync://'):]}/"
        return f"{credential.identity}@{repository}/"

    def ssh_command(self, credential: AccessCredential) -> str:
        parts = [
            "ssh",
            "-p", str(self.config.port),
            "-o", "BatchMode=yes",
        ]
        if credential.has_private_key:
            parts += ["-i", str(credential.key_path)]
        if self.config.proxy:
            parts += ["-o", f"ProxyCommand=nc -X connect -x {self.config.proxy} %h %p"]
        return " ".join(shlex.quote(p) for p in parts)

    def build_command(self, credential: AccessCredential, staging_dir: Path) -> List[str]:
        command = [
            "rsync", "-ltvrP", "--stats",
            "--delay-updates", f"--partial-dir={PARTIAL_DIR}",
            f"--timeout={self.config.transport_timeout}",
        ]
        if self.config.mirror_delete:
            command.append("--delete")
        for path in self.protected:
            command += ["--filter", f"P /{path}"]
        if not credential.repository.startswith("rsync://"):
            command += ["-e", self.ssh_command(credential)]
        command += [self.source_url(credential), str(staging_dir)]
        return command

    def build_env(self, credential: AccessCredential) -> Dict[str, str]:
        env = os.environ.copy()
        if self.config.proxy and credential.repository.startswith("rsync://"):
            env["RSYNC_PROXY"] = self.config.proxy
        return env

    def pull(self, credential: AccessCredential, staging_dir: Path) -> TransportResult:
        staging_dir = Path(staging_dir)
        staging_dir.mkdir(parents=True, exist_ok=True)
        result = TransportResult(
            transport=self.name,
            repository=credential.repository,
            started_at=datetime.utcnow(),
        )

        command = self.build_command(credential, staging_dir)
        logger.info(f"Pulling {credential.repository} into {staging_dir}")
        logger.debug(f"rsync command: {command}")

        try:
            completed = self.runner(
                command,
                env=self.build_env(credential),
                capture_output=True,
                text=True,
            )
        except OSError as e:
            raise TransportFailure(f"Cannot run rsync: {e}") from e

        if completed.returncode != 0:
            reason = RSYNC_EXIT_REASONS.get(completed.returncode, "unknown error")
            logger.error(f"rsync stderr:\n{completed.stderr}")
            raise TransportFailure(
                f"rsync failed with code {completed.returncode} ({reason})",
                returncode=completed.returncode,
                stderr=completed.stderr,
            )

        result.output = completed.stdout or ""
        result.files_updated = self._count_transferred(result.output)
        result.files_deleted = sum(
            1 for line in result.output.splitlines() if line.startswith("deleting ")
        )
        result.finished_at = datetime.utcnow()
        logger.info(
            f"rsync complete: {result.files_updated} updated, {result.files_deleted} deleted"
        )
        return result

    @staticmethod
    def _count_transferred(output: str) -> int:
        match = _TRANSFERRED.search(output)
        if not match:
            return 0
        return int(match.group(1).replace(",", ""))
