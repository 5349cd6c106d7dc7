"""Downstream processor protocol and a reporting implementation."""

import logging
from typing import Optional, Protocol, runtime_checkable

from ..models.results import ScanBatch

logger = logging.getLogger(__name__)


@runtime_checkable
class DocumentProcessor(Protocol):
    """
    Protocol for the pipeline that consumes scan batches.

    ``process`` returns True once the whole batch is safely handed off.
    Returning False (or raising) keeps the watermark where it was, so the
    same window is offered again on the next scan. Implementations must
    tolerate seeing a document more than once.
    """

    async def process(self, batch: ScanBatch) -> bool:
        ...


class ReportingProcessor:
    """
    Processor that only reports what a scan selected.

    Useful for previewing scans from the command line. Always succeeds.
    """

    def __init__(self, limit: int = 5) -> None:
        """
        Args:
            limit: How many of the most recent documents to list per batch
        """
        self.limit = limit
        self.last_batch: Optional[ScanBatch] = None
        self.batch_count = 0

    async def process(self, batch: ScanBatch) -> bool:
        self.last_batch = batch
        self.batch_count += 1
        logger.info(
            f"{batch.mode.value} batch: {len(batch)} document(s), "
            f"{len(batch.tags)} tags, {len(batch.correspondents)} correspondents, "
            f"{len(batch.document_types)} document types"
        )
        for doc in batch.documents[: self.limit]:
            logger.info(f"  - Doc {doc.get('id')}: {doc.get('title')} (modified: {doc.get('modified')})")
        return True
