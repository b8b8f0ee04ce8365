"""
Parser for JSON advisory bundles.

Expected structure (a bare list of advisories is also accepted):
{
    "advisories": [
        {
            "id": "DFN-CERT-2024-0001",
            "title": "openssl: Several vulnerabilities",
            "summary": "...",
            "published": "2024-01-10T08:00:00Z",
            "updated": "2024-01-15T12:00:00Z",
            "cvss": 7.5,
            "cves": ["CVE-2024-0001"],
            "references": ["https://..."]
        }
    ]
}
"""
import json
import logging
from typing import Any, Dict, List, Optional

from .base_parser import AdvisoryRecord, DocumentParser, extract_cves, parse_score
from .timeparse import parse_feed_time

logger = logging.getLogger(__name__)

ID_KEYS = ("id", "advisory_id")
UPDATED_KEYS = ("updated", "modified", "modification_time")
CREATED_KEYS = ("published", "created", "creation_time")


def _first(entry: Dict[str, Any], keys) -> Any:
    for key in keys:
        if entry.get(key) not in (None, ""):
            return entry[key]
    return None


class JsonDocumentParser(DocumentParser):
    """Loads advisories from JSON bundle documents."""

    suffixes = (".json",)

    def parse(self, name: str, content: bytes) -> List[AdvisoryRecord]:
        try:
            data = json.loads(content.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise self.fail(name, f"invalid JSON: {e}") from e

        if isinstance(data, dict):
            entries = data.get("advisories")
        else:
            entries = data

        if not isinstance(entries, list):
            raise self.fail(name, "expected a list of advisories")

        records = []
        for entry in entries:
            record = self.normalize(entry, name)
            if record:
                records.append(record)
            else:
                logger.warning(f"Skipping malformed advisory entry in {name}: {str(entry)[:200]}")
        return records

    def normalize(self, entry: Any, document: str) -> Optional[AdvisoryRecord]:
        if not isinstance(entry, dict):
            return None

        advisory_id = _first(entry, ID_KEYS)
        if not advisory_id:
            return None

        created = parse_feed_time(_first(entry, CREATED_KEYS))
        modified = parse_feed_time(_first(entry, UPDATED_KEYS)) or created
        if modified is None:
            return None

        title = entry.get("title")
        summary = entry.get("summary") or entry.get("description")

        cves = entry.get("cves") or entry.get("cve_ids")
        if isinstance(cves, list):
            cve_ids = list(dict.fromkeys(str(c).strip() for c in cves if str(c).strip()))
        else:
            cve_ids = extract_cves(title, summary)

        refs = entry.get("references") or []
        references = [r.get("url") if isinstance(r, dict) else r for r in refs]

        return AdvisoryRecord(
            advisory_id=str(advisory_id).strip(),
            document=document,
            modification_time=modified,
            creation_time=created,
            title=title,
            summary=summary,
            cvss_score=parse_score(entry.get("cvss", entry.get("cvss_score"))),
            cve_ids=cve_ids,
            references=[r for r in references if r],
            raw_payload=entry,
        )
