import asyncio
from typing import Callable, List, Optional
from src.core.models.documents import Document, EmbeddingRecord, FailedDocument, IndexReport, utc_now
from src.core.services.embedding import EmbeddingService
from src.processing.chunker import Chunker
from src.utils.logging import alert_logger, logger


class Indexer:
    """Keeps the vector index in step with a document source.

    A document is re-embedded only when its source timestamp is newer than the
    one stored with its records, and its records are always swapped as a whole.
    Runs are serialized; ``request_cancel()`` stops a run between documents.
    """

    def __init__(
        self,
        vector_index,
        embedding_service: EmbeddingService,
        chunker: Chunker,
        on_corpus_changed: Optional[Callable[[], None]] = None
    ):
        self.vector_index = vector_index
        self.embedding_service = embedding_service
        self.chunker = chunker
        self.on_corpus_changed = on_corpus_changed
        self.last_report: Optional[IndexReport] = None
        self._run_lock = asyncio.Lock()
        self._cancel_requested = False

    @property
    def running(self) -> bool:
        return self._run_lock.locked()

    def request_cancel(self):
        if self.running:
            logger.info("Cancellation requested for the running sync")
            self._cancel_requested = True

    async def process_document(self, source, document: Document) -> int:
        """Download, chunk, embed and store one document. Returns the chunk count."""
        document = await source.download(document)
        chunks = await asyncio.to_thread(self.chunker.split, document)
        vectors = await self.embedding_service.embed_documents([c.text for c in chunks])

        records: List[EmbeddingRecord] = [
            EmbeddingRecord(
                chunk_id=chunk.chunk_id,
                document_id=document.id,
                sequence=chunk.sequence,
                text=chunk.text,
                vector=vector,
                metadata=chunk.metadata,
                modified_time=document.modified_time
            )
            for chunk, vector in zip(chunks, vectors)
        ]
        await self.vector_index.replace_document(document, records)
        return len(records)

    async def sync(self, source) -> IndexReport:
        async with self._run_lock:
            self._cancel_requested = False
            report = IndexReport()
            try:
                await self._sync(source, report)
            finally:
                report.finished_at = utc_now()
                self.last_report = report
                if report.changed and self.on_corpus_changed is not None:
                    self.on_corpus_changed()
            logger.info(f"Sync finished: {report.summary()}" + (" (cancelled)" if report.cancelled else ""))
            return report

    async def _sync(self, source, report: IndexReport):
        stored = await self.vector_index.document_timestamps()
        # Enumeration failures propagate: without a listing nothing can be removed safely
        documents = await source.enumerate()

        seen = set()
        for idx, document in enumerate(documents, 1):
            if self._cancel_requested:
                report.cancelled = True
                return
            if document.id in seen:
                continue
            seen.add(document.id)

            stored_time = stored.get(document.id)
            if stored_time is not None and stored_time >= document.modified_time:
                report.skipped.append(document.id)
                continue

            try:
                logger.info(f"Indexing document {idx}/{len(documents)}: {document.id}")
                chunk_count = await self.process_document(source, document)
            except Exception as e:
                alert_logger.error(f"Indexing failed for {document.id}: {e}")
                report.failed.append(FailedDocument(document_id=document.id, error=str(e)))
                continue

            if stored_time is None:
                report.added.append(document.id)
            else:
                report.updated.append(document.id)
            logger.info(f"Indexed {document.id} ({chunk_count} chunks)")

        for document_id in sorted(set(stored) - seen):
            if self._cancel_requested:
                report.cancelled = True
                return
            try:
                await self.vector_index.delete_document(document_id)
            except Exception as e:
                alert_logger.error(f"Removing {document_id} from the index failed: {e}")
                report.failed.append(FailedDocument(document_id=document_id, error=str(e)))
                continue
            logger.info(f"Removed document no longer in source: {document_id}")
            report.removed.append(document_id)
