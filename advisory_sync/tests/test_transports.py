"""
Tests for mirror transports.

These tests validate:
- rsync command construction (protect filters, ssh, proxy) and failure mapping
- Archive download, extraction and reconciliation of the staging directory
- Explicit retry policy and transport selection
"""
import calendar
import io
import subprocess
import zipfile
from datetime import datetime

import pytest
import requests

from access import resolve_credential
from errors import TransportFailure
from ingestion import (
    ArchiveTransport,
    MirrorTransport,
    RetryingTransport,
    RetryPolicy,
    RsyncTransport,
    TransportResult,
    build_transport,
)

RSYNC_STATS = (
    "receiving incremental file list\n"
    "deleting withdrawn.json\n"
    "bundle-2024.json\n"
    "\n"
    "Number of files: 12 (reg: 10, dir: 2)\n"
    "Number of regular files transferred: 3\n"
)

ARCHIVE_TIME = (2024, 1, 15, 12, 0, 0)


class RecordingRunner:
    """Stands in for subprocess.run and remembers its calls."""

    def __init__(self, returncode=0, stdout=RSYNC_STATS, stderr=""):
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr
        self.calls = []

    def __call__(self, command, **kwargs):
        self.calls.append((command, kwargs))
        return subprocess.CompletedProcess(command, self.returncode, self.stdout, self.stderr)


def _credential(tmp_path, locator):
    path = tmp_path / "access-key"
    path.write_text(locator + "\n")
    return resolve_credential(path)


def test_rsync_over_ssh_command(sync_config, credential_file):
    runner = RecordingRunner()
    credential = resolve_credential(credential_file)

    result = RsyncTransport(sync_config, runner=runner).pull(credential, sync_config.feed_path)

    command, kwargs = runner.calls[0]
    assert command[0] == "rsync"
    assert "--delete" in command
    assert "--timeout=600" in command
    assert "--delay-updates" in command
    assert "--partial-dir=.rsync-partial" in command
    assert command.index("--partial-dir=.rsync-partial") < command.index(str(sync_config.feed_path))
    for protected in ["P /cert.duckdb", "P /cert.duckdb.wal", "P /private/"]:
        assert protected in command
    ssh = command[command.index("-e") + 1]
    assert ssh.startswith("ssh -p 24 -o BatchMode=yes")
    assert command[-2] == "feed@mirror.example.org:/cert-data/"
    assert command[-1] == str(sync_config.feed_path)
    assert kwargs["capture_output"] is True

    assert sync_config.feed_path.is_dir()
    assert result.transport == "rsync"
    assert result.files_updated == 3
    assert result.files_deleted == 1


def test_rsync_daemon_with_proxy(tmp_path, sync_config):
    config = sync_config.replace(proxy="proxy.example.org:3128", mirror_delete=False)
    credential = _credential(tmp_path, "feed@rsync://mirror.example.org/cert")
    runner = RecordingRunner()

    RsyncTransport(config, runner=runner).pull(credential, config.feed_path)

    command, kwargs = runner.calls[0]
    assert "-e" not in command
    assert "--delete" not in command
    assert command[-2] == "rsync://feed@mirror.example.org/cert/"
    assert kwargs["env"]["RSYNC_PROXY"] == "proxy.example.org:3128"


def test_ssh_proxy_and_key(tmp_path, sync_config):
    config = sync_config.replace(proxy="proxy.example.org:3128", port=2222)
    path = tmp_path / "access-key"
    path.write_text("-----BEGIN KEY-----\nabc\n-----END KEY-----\nfeed@mirror.example.org:/cert\n")
    credential = resolve_credential(path)

    ssh = RsyncTransport(config).ssh_command(credential)

    assert "-p 2222" in ssh
    assert f"-i {path}" in ssh
    assert "ProxyCommand=nc -X connect -x proxy.example.org:3128 %h %p" in ssh


def test_rsync_failure(sync_config, credential_file):
    runner = RecordingRunner(returncode=5, stdout="", stderr="@ERROR: auth failed on module cert")

    with pytest.raises(TransportFailure) as excinfo:
        RsyncTransport(sync_config, runner=runner).pull(
            resolve_credential(credential_file), sync_config.feed_path
        )

    assert excinfo.value.returncode == 5
    assert "authentication" in str(excinfo.value)
    assert "auth failed" in excinfo.value.stderr


def test_rsync_not_runnable(sync_config, credential_file):
    def runner(command, **kwargs):
        raise FileNotFoundError("rsync")

    with pytest.raises(TransportFailure, match="Cannot run rsync"):
        RsyncTransport(sync_config, runner=runner).pull(
            resolve_credential(credential_file), sync_config.feed_path
        )


def _zip_bytes(members):
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as archive:
        for name, data in members.items():
            archive.writestr(zipfile.ZipInfo(name, date_time=ARCHIVE_TIME), data)
    return buffer.getvalue()


class FakeClient:
    """Serves a fixed payload in place of HttpClient."""

    def __init__(self, payload=None, error=None):
        self.payload = payload
        self.error = error
        self.urls = []

    def download_to_file(self, url, destination, headers=None):
        self.urls.append(url)
        if self.error:
            raise self.error
        destination.write_bytes(self.payload)
        return len(self.payload)


@pytest.fixture
def archive_setup(tmp_path, sync_config):
    staging = sync_config.feed_path
    (staging / "private").mkdir(parents=True)
    (staging / "cert.duckdb").write_bytes(b"local store")
    (staging / "private" / "last-sync").write_text("1700000000\n")
    (staging / "withdrawn.json").write_text("{}")
    credential = _credential(tmp_path, "feed@https://feed.example.org/cert.zip")
    return staging, credential


def test_archive_reconciles_staging(sync_config, archive_setup):
    staging, credential = archive_setup
    payload = _zip_bytes({
        "bundle-2024.json": b'{"advisories": []}',
        "feeds/dfn-cert-2024.xml": b"<feed/>",
        "cert.duckdb": b"remote must not win",
    })
    client = FakeClient(payload)
    transport = ArchiveTransport(sync_config, client=client)

    result = transport.pull(credential, staging)

    assert client.urls == ["https://feed.example.org/cert.zip"]
    assert result.transport == "archive"
    assert result.files_updated == 2
    assert result.files_deleted == 1
    assert not (staging / "withdrawn.json").exists()
    assert (staging / "cert.duckdb").read_bytes() == b"local store"
    assert (staging / "private" / "last-sync").exists()
    assert (staging / "feeds" / "dfn-cert-2024.xml").read_bytes() == b"<feed/>"
    assert int((staging / "bundle-2024.json").stat().st_mtime) == calendar.timegm(ARCHIVE_TIME)

    # Same archive again: nothing to copy
    assert transport.pull(credential, staging).files_updated == 0


def test_archive_keeps_absent_files_without_delete(sync_config, archive_setup):
    staging, credential = archive_setup
    config = sync_config.replace(mirror_delete=False)
    client = FakeClient(_zip_bytes({"bundle-2024.json": b"{}"}))

    result = ArchiveTransport(config, client=client).pull(credential, staging)

    assert result.files_deleted == 0
    assert (staging / "withdrawn.json").exists()


@pytest.mark.parametrize("client", [
    FakeClient(payload=b"this is not a zip archive"),
    FakeClient(payload=_zip_bytes({"../escape.json": b"{}"})),
    FakeClient(error=requests.ConnectionError("connection refused")),
])
def test_archive_failure_leaves_staging_untouched(sync_config, archive_setup, client):
    staging, credential = archive_setup
    before = sorted(p.relative_to(staging).as_posix() for p in staging.rglob("*"))

    with pytest.raises(TransportFailure):
        ArchiveTransport(sync_config, client=client).pull(credential, staging)

    after = sorted(p.relative_to(staging).as_posix() for p in staging.rglob("*"))
    assert after == before


class FlakyTransport(MirrorTransport):
    """Fails a fixed number of times before succeeding."""

    name = "flaky"

    def __init__(self, config, failures):
        super().__init__(config)
        self.failures = failures
        self.calls = 0

    def pull(self, credential, staging_dir):
        self.calls += 1
        if self.calls <= self.failures:
            raise TransportFailure(f"attempt {self.calls} failed")
        return TransportResult(self.name, credential.repository, datetime.utcnow())


def test_retry_recovers(sync_config, credential_file):
    sleeps = []
    inner = FlakyTransport(sync_config, failures=2)
    transport = RetryingTransport(inner, RetryPolicy(attempts=2, base_delay_seconds=1.0), sleep=sleeps.append)

    result = transport.pull(resolve_credential(credential_file), sync_config.feed_path)

    assert result.attempts == 3
    assert inner.calls == 3
    assert len(sleeps) == 2
    assert transport.name == "flaky"


def test_retry_gives_up(sync_config, credential_file):
    sleeps = []
    inner = FlakyTransport(sync_config, failures=5)
    transport = RetryingTransport(inner, RetryPolicy(attempts=1), sleep=sleeps.append)

    with pytest.raises(TransportFailure, match="attempt 2"):
        transport.pull(resolve_credential(credential_file), sync_config.feed_path)
    assert inner.calls == 2
    assert len(sleeps) == 1


def test_retry_delay_is_bounded():
    policy = RetryPolicy(attempts=3, base_delay_seconds=5.0, max_delay_seconds=120.0, jitter_ratio=0.3)

    assert 5.0 <= policy.delay(0) <= 6.5
    assert 10.0 <= policy.delay(1) <= 13.0
    assert 120.0 <= policy.delay(10) <= 156.0


def test_transport_selection(tmp_path, sync_config, credential_file):
    ssh_credential = resolve_credential(credential_file)
    archive_credential = _credential(tmp_path, "feed@https://feed.example.org/cert.zip")

    assert isinstance(build_transport(sync_config, ssh_credential), RsyncTransport)
    assert isinstance(build_transport(sync_config, archive_credential), ArchiveTransport)

    retrying = build_transport(sync_config.replace(retry_attempts=2), ssh_credential)
    assert isinstance(retrying, RetryingTransport)
    assert retrying.policy.attempts == 2
    assert retrying.name == "rsync"
