"""
Ingestion layer for the advisory sync.

Provides the mirror transports that populate the staging directory and
the parsers that turn staged documents into advisory records:
- RsyncTransport (ssh or rsync daemon)
- ArchiveTransport (HTTP(S) zip archive)
- RetryingTransport (explicit opt-in retry policy)
- JsonDocumentParser / AtomDocumentParser
"""
from .archive_transport import ArchiveTransport
from .atom_parser import AtomDocumentParser
from .base_parser import AdvisoryRecord, DocumentParser
from .base_transport import MirrorTransport, TransportResult, protected_paths
from .json_parser import JsonDocumentParser
from .retry import RetryingTransport, RetryPolicy
from .rsync_transport import RsyncTransport
from .staging import StagedDocument, parser_for, scan_staging
from .transports import build_transport

__all__ = [
    "AdvisoryRecord",
    "DocumentParser",
    "JsonDocumentParser",
    "AtomDocumentParser",
    "MirrorTransport",
    "TransportResult",
    "protected_paths",
    "RsyncTransport",
    "ArchiveTransport",
    "RetryingTransport",
    "RetryPolicy",
    "StagedDocument",
    "parser_for",
    "scan_staging",
    "build_transport",
]
