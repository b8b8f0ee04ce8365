"""
Parser for Atom advisory feeds (CERT-style "dfn-cert-*.xml" documents).

Each Atom entry is one advisory. CVE references may come from namespaced
elements (e.g. <dfncert:cve>) or from the entry text.
"""
import calendar
import logging
from typing import Any, List, Optional

import feedparser

from .base_parser import AdvisoryRecord, DocumentParser, extract_cves, parse_score
from .timeparse import from_epoch, parse_feed_time

logger = logging.getLogger(__name__)


def _struct_time(entry: Any, key: str):
    value = entry.get(key)
    if value:
        return from_epoch(calendar.timegm(value))
    return None


class AtomDocumentParser(DocumentParser):
    """Loads advisories from Atom feed documents using feedparser."""

    suffixes = (".xml", ".atom")

    def parse(self, name: str, content: bytes) -> List[AdvisoryRecord]:
        feed = feedparser.parse(content)

        if feed.bozo and not feed.entries:
            reason = feed.get("bozo_exception", "not a feed document")
            raise self.fail(name, f"unparsable feed: {reason}")

        records = []
        for entry in feed.entries:
            record = self.normalize(entry, name)
            if record:
                records.append(record)
            else:
                logger.warning(f"Skipping Atom entry without id or date in {name}: {entry.get('title')}")
        return records

    def normalize(self, entry: Any, document: str) -> Optional[AdvisoryRecord]:
        advisory_id = (entry.get("id") or "").strip()
        if not advisory_id:
            return None

        created = parse_feed_time(entry.get("published")) or _struct_time(entry, "published_parsed")
        modified = (
            parse_feed_time(entry.get("updated"))
            or _struct_time(entry, "updated_parsed")
            or created
        )
        if modified is None:
            return None

        title = entry.get("title")
        summary = entry.get("summary")

        namespaced = []
        cvss = None
        for key, value in entry.items():
            if not isinstance(value, str):
                continue
            if key.endswith("_cve"):
                namespaced.append(value)
            elif key.endswith("_cvss") or key.endswith("_cvss_base"):
                cvss = value

        references = [link.get("href") for link in entry.get("links", []) if link.get("href")]

        return AdvisoryRecord(
            advisory_id=advisory_id,
            document=document,
            modification_time=modified,
            creation_time=created,
            title=title,
            summary=summary,
            cvss_score=parse_score(cvss),
            cve_ids=extract_cves(*namespaced, title, summary),
            references=references,
            raw_payload={
                "id": advisory_id,
                "title": title,
                "updated": entry.get("updated"),
                "published": entry.get("published"),
            },
        )
