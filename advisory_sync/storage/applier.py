"""
Incremental update applier.

Reconciles staged documents against the store:

1. Documents whose filesystem mtime is older than the last_update
   watermark are skipped without being read.
2. Documents whose content digest matches the digest recorded when they
   were last applied are skipped as unchanged.
3. Remaining documents are parsed; advisories not modified after the
   reference date are filtered out; the rest are applied in one
   transaction per document.

The reference date is the newest modification_time stored by the last
fully successful batch. It is kept in the meta table next to the
watermark and both only move after every document of the batch
succeeded, so a document that failed is retried against the same
reference date as the documents applied alongside it. Neither moves
backwards.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, List, Optional

from errors import DocumentParseError, InconsistentStore
from ingestion.base_parser import DocumentParser
from ingestion.staging import DEFAULT_PARSERS, StagedDocument, parser_for
from ingestion.timeparse import EPOCH, to_epoch

from .database import Database
from .loader import AdvisoryLoader

logger = logging.getLogger(__name__)


@dataclass
class ApplyResult:
    """Per-category counts for one update batch."""
    last_update_before: int = 0
    last_update_after: int = 0
    reference_date: Optional[datetime] = None
    documents_seen: int = 0
    documents_applied: int = 0
    documents_skipped_old: int = 0
    documents_unchanged: int = 0
    advisories_upserted: int = 0
    advisories_filtered: int = 0
    watermark_recovered: bool = False
    failed_documents: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.failed_documents


class UpdateApplier:
    """Applies staged documents to the store and advances the watermark."""

    def __init__(self, database: Database, parsers: Iterable[DocumentParser] = None):
        self.db = database
        self.loader = AdvisoryLoader(database)
        self.parsers = list(parsers or DEFAULT_PARSERS)

    def read_watermark(self, result: ApplyResult) -> int:
        try:
            return self.db.get_last_update()
        except InconsistentStore as e:
            logger.warning(f"{e}; reprocessing all staged documents")
            result.watermark_recovered = True
            return 0

    def read_reference_date(self) -> datetime:
        try:
            return self.db.get_reference_date()
        except InconsistentStore as e:
            logger.warning(f"{e}; applying all advisories of changed documents")
            return EPOCH

    def apply(
        self,
        documents: Iterable[StagedDocument],
        run_started: datetime,
        run_id: str
    ) -> ApplyResult:
        """
        Apply a batch of staged documents.

        Args:
            documents: Staged documents, applied in the given order
            run_started: Wall-clock start of the run (naive UTC); becomes the watermark
            run_id: Sync run identifier

        Returns:
            ApplyResult; result.succeeded is False if any document failed
        """
        result = ApplyResult()
        last_update = self.read_watermark(result)
        result.last_update_before = last_update
        result.reference_date = self.read_reference_date()
        logger.info(
            f"Applying updates: last_update={last_update}, reference date {result.reference_date.isoformat()}"
        )

        for document in documents:
            result.documents_seen += 1
            if document.mtime < last_update:
                logger.debug(f"Skipping {document.name}: older than last update")
                result.documents_skipped_old += 1
                continue

            try:
                self._apply_document(document, result, run_id)
            except (DocumentParseError, OSError) as e:
                logger.error(f"Failed to apply {document.name}: {e}")
                result.failed_documents.append(document.name)
            except Exception as e:
                logger.error(f"Failed to apply {document.name}: {e}", exc_info=True)
                result.failed_documents.append(document.name)

        if result.succeeded:
            result.last_update_after = max(last_update, to_epoch(run_started))
            newest = max(result.reference_date, self.db.newest_modification_time())
            with self.db.transaction():
                self.db.set_last_update(result.last_update_after)
                self.db.set_reference_date(newest)
            logger.info(
                f"Watermark advanced to {result.last_update_after}, reference date {newest.isoformat()}"
            )
        else:
            result.last_update_after = last_update
            logger.error(
                f"{len(result.failed_documents)} document(s) failed; watermark left at {last_update}, "
                f"reference date left at {result.reference_date.isoformat()}"
            )

        return result

    def _apply_document(self, document: StagedDocument, result: ApplyResult, run_id: str):
        content = document.read()
        digest = document.digest(content)
        if self.db.get_applied_digest(document.name) == digest:
            logger.debug(f"Skipping {document.name}: content unchanged")
            result.documents_unchanged += 1
            return

        parser = parser_for(document.name, self.parsers)
        if parser is None:
            raise DocumentParseError(document.name, "no parser for this document type")

        records = parser.parse(document.name, content)
        fresh = [r for r in records if r.modification_time > result.reference_date]
        result.advisories_filtered += len(records) - len(fresh)

        written = self.loader.load_document(document.name, digest, document.mtime, fresh, run_id)
        result.documents_applied += 1
        result.advisories_upserted += written
        logger.info(f"Applied {document.name}: {written} advisories ({len(records) - len(fresh)} already current)")
