"""
Staged document discovery.

The staging directory is the local mirror of the upstream corpus. Every
regular file that a registered parser understands becomes a StagedDocument;
protected paths (store file, private subtree), feed marker files and
anything under a dot-directory (such as the rsync partial dir) are never
treated as documents.
"""
import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional

from .atom_parser import AtomDocumentParser
from .base_parser import DocumentParser
from .json_parser import JsonDocumentParser

logger = logging.getLogger(__name__)

DEFAULT_PARSERS: List[DocumentParser] = [JsonDocumentParser(), AtomDocumentParser()]
MARKER_FILES = {"timestamp"}


@dataclass
class StagedDocument:
    """One upstream file in the staging directory."""
    name: str           # Path relative to the staging directory, '/'-separated
    path: Path
    mtime: float        # Filesystem modification time, epoch seconds

    def read(self) -> bytes:
        return self.path.read_bytes()

    def digest(self, content: Optional[bytes] = None) -> str:
        data = self.read() if content is None else content
        return hashlib.sha256(data).hexdigest()


def parser_for(name: str, parsers: Iterable[DocumentParser] = None) -> Optional[DocumentParser]:
    for parser in parsers or DEFAULT_PARSERS:
        if parser.handles(name):
            return parser
    return None


def is_protected(relative: str, protected: Iterable[str]) -> bool:
    """True if a '/'-separated relative path is, or lies under, a protected path."""
    for entry in protected:
        entry = entry.rstrip("/")
        if relative == entry or relative.startswith(entry + "/"):
            return True
    return False


def scan_staging(
    staging_dir: Path,
    protected: Iterable[str] = (),
    parsers: Iterable[DocumentParser] = None
) -> List[StagedDocument]:
    """
    List staged documents, sorted by name.

    Args:
        staging_dir: Local mirror directory
        protected: Relative paths that belong to the local installation
        parsers: Parsers whose suffixes select documents

    Returns:
        StagedDocument list (empty if the directory does not exist)
    """
    staging_dir = Path(staging_dir)
    if not staging_dir.is_dir():
        logger.warning(f"Staging directory {staging_dir} does not exist")
        return []

    protected = list(protected)
    parsers = list(parsers or DEFAULT_PARSERS)
    documents = []

    for path in staging_dir.rglob("*"):
        if not path.is_file():
            continue
        relative = path.relative_to(staging_dir).as_posix()
        if is_protected(relative, protected):
            continue
        if relative in MARKER_FILES or any(part.startswith(".") for part in relative.split("/")):
            continue
        if parser_for(relative, parsers) is None:
            logger.debug(f"Ignoring {relative}: no parser for this file type")
            continue
        documents.append(StagedDocument(name=relative, path=path, mtime=path.stat().st_mtime))

    documents.sort(key=lambda d: d.name)
    return documents
