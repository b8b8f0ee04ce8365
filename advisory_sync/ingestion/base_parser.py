"""
Base parser interface for staged feed documents.

Defines the contract that all document parsers must implement and the
normalized AdvisoryRecord they produce.
"""
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from errors import DocumentParseError

CVE_PATTERN = re.compile(r"CVE-\d{4}-\d{4,}")


@dataclass
class AdvisoryRecord:
    """
    Normalized advisory as persisted in the store.

    This is the canonical format every parser must produce, whatever the
    shape of the upstream document.
    """
    # Identity
    advisory_id: str
    document: str                  # Staged document the advisory came from

    # Temporal metadata
    modification_time: datetime    # Naive UTC
    creation_time: Optional[datetime] = None

    # Descriptive fields
    title: Optional[str] = None
    summary: Optional[str] = None
    cvss_score: Optional[float] = None
    cve_ids: List[str] = field(default_factory=list)
    references: List[str] = field(default_factory=list)

    raw_payload: Dict[str, Any] = field(default_factory=dict)

    @property
    def severity(self) -> str:
        """Severity class derived from the CVSS score."""
        if self.cvss_score is None:
            return "none"
        if self.cvss_score >= 7.0:
            return "high"
        if self.cvss_score >= 4.0:
            return "medium"
        if self.cvss_score > 0.0:
            return "low"
        return "none"


def extract_cves(*texts: Optional[str]) -> List[str]:
    """Collect distinct CVE identifiers from free text, in order of appearance."""
    seen: List[str] = []
    for text in texts:
        for cve in CVE_PATTERN.findall(text or ""):
            if cve not in seen:
                seen.append(cve)
    return seen


def parse_score(value: Any) -> Optional[float]:
    if value in (None, ""):
        return None
    try:
        score = float(value)
    except (TypeError, ValueError):
        return None
    if score < 0.0 or score > 10.0:
        return None
    return score


class DocumentParser(ABC):
    """
    Abstract base class for staged document parsers.

    Parsers are stateless: parse() turns the raw bytes of one staged
    document into advisory records, raising DocumentParseError when the
    document as a whole is unusable. Individual malformed entries are
    dropped by normalize() returning None.
    """

    suffixes: tuple = ()

    def handles(self, name: str) -> bool:
        return name.lower().endswith(self.suffixes)

    @abstractmethod
    def parse(self, name: str, content: bytes) -> List[AdvisoryRecord]:
        """
        Parse one staged document.

        Args:
            name: Document name relative to the staging directory
            content: Raw document bytes

        Returns:
            List of AdvisoryRecord objects
        """
        pass

    @abstractmethod
    def normalize(self, entry: Any, document: str) -> Optional[AdvisoryRecord]:
        """
        Transform one raw document entry into an AdvisoryRecord.

        Returns:
            AdvisoryRecord or None if the entry has no id or no usable date
        """
        pass

    def fail(self, name: str, reason: str) -> DocumentParseError:
        return DocumentParseError(name, reason)
