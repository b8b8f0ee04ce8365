"""
Transport selection.

The repository locator in the access credential decides the transport:
HTTP(S) URLs use the archive transport, everything else rsync.
"""
from access.credentials import AccessCredential
from access.prerequisites import is_archive_locator
from config import SyncConfig

from .archive_transport import ArchiveTransport
from .base_transport import MirrorTransport
from .retry import RetryingTransport, RetryPolicy
from .rsync_transport import RsyncTransport


def build_transport(config: SyncConfig, credential: AccessCredential) -> MirrorTransport:
    if is_archive_locator(credential.repository):
        transport: MirrorTransport = ArchiveTransport(config)
    else:
        transport = RsyncTransport(config)

    policy = RetryPolicy.from_config(config)
    if policy.attempts:
        return RetryingTransport(transport, policy)
    return transport
