"""Background ingestion pipeline: extract -> chunk -> persist -> terminal status.

Uploads are queued on an ``IngestionRunner`` (a bounded asyncio queue served
by a few worker tasks) so the upload request returns while the document is
still ``processing``. Each job ends with the document either ``completed`` or
``failed``; a failure at any step is logged and recorded, never raised.
"""
import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional

from loguru import logger

from docchat.core.config import Settings
from docchat.core.errors import DocChatError, EmptyExtractedText, IngestionBacklogFull
from docchat.db.records import ChunkDraft, DocumentStatus
from docchat.db.repository import Repository
from docchat.services import chunking, extraction


@dataclass
class IngestionJob:
    document_id: int
    data: bytes
    media_type: str


@dataclass
class IngestionReport:
    document_id: int
    status: DocumentStatus
    chunks: int = 0
    outcome: Optional[extraction.ExtractionOutcome] = None
    error: Optional[str] = None
    finished_at: float = field(default_factory=time.time)


class IngestionPipeline:
    def __init__(self, repository: Repository, settings: Settings):
        self._repo = repository
        self._max_chunk_size = settings.max_chunk_size
        self._debug = settings.pipeline_debug

    async def _mark_failed(self, document_id: int) -> None:
        try:
            await self._repo.update_document_status(document_id, DocumentStatus.FAILED)
        except Exception:
            logger.exception(f"[PIPELINE][INGEST][error] doc_id={document_id} stage=mark_failed")

    async def ingest(self, document_id: int, data: bytes, media_type: str) -> IngestionReport:
        if self._debug:
            logger.info(f"[PIPELINE][INGEST][start] doc_id={document_id} bytes={len(data)} content_type={media_type}")
        outcome = None
        stage = "extract"
        try:
            result = await asyncio.to_thread(extraction.extract, data, media_type)
            outcome = result.outcome
            if self._debug:
                logger.info(f"[PIPELINE][INGEST][extracted] doc_id={document_id} outcome={outcome.value} chars={len(result.text)}")
            if not result.text.strip():
                raise EmptyExtractedText(document_id)

            stage = "chunk"
            pieces = chunking.chunk_text(result.text, self._max_chunk_size)
            if not pieces:
                raise EmptyExtractedText(document_id)
            if self._debug:
                logger.info(f"[PIPELINE][INGEST][chunked] doc_id={document_id} chunks={len(pieces)} max_chunk_size={self._max_chunk_size}")

            stage = "persist"
            drafts = [
                ChunkDraft(document_id=document_id, chunk_index=idx, content=piece, word_count=chunking.count_words(piece))
                for idx, piece in enumerate(pieces)
            ]
            await self._repo.create_chunks(drafts)
            await self._repo.update_document_status(document_id, DocumentStatus.COMPLETED, result.text)
        except DocChatError as e:
            logger.warning(f"[PIPELINE][INGEST][error] doc_id={document_id} stage={stage} error={e}")
            await self._mark_failed(document_id)
            return IngestionReport(document_id, DocumentStatus.FAILED, outcome=outcome, error=str(e))
        except Exception as e:
            logger.exception(f"[PIPELINE][INGEST][error] doc_id={document_id} stage={stage} error={e}")
            await self._mark_failed(document_id)
            return IngestionReport(document_id, DocumentStatus.FAILED, outcome=outcome, error=f"{stage}: {e}")

        if self._debug:
            logger.info(f"[PIPELINE][INGEST][done] doc_id={document_id} status=completed chunks={len(drafts)}")
        return IngestionReport(document_id, DocumentStatus.COMPLETED, chunks=len(drafts), outcome=outcome)


class IngestionRunner:
    """Bounded queue of ingestion jobs served by ``workers`` asyncio tasks."""

    def __init__(self, pipeline: IngestionPipeline, workers: int = 2, queue_size: int = 100):
        self._pipeline = pipeline
        self._worker_count = max(1, workers)
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._workers: List[asyncio.Task] = []
        self.recent: Deque[IngestionReport] = deque(maxlen=50)
        self.crashes = 0

    @classmethod
    def from_settings(cls, pipeline: IngestionPipeline, settings: Settings) -> "IngestionRunner":
        return cls(pipeline, settings.ingest_workers, settings.ingest_queue_size)

    @property
    def running(self) -> bool:
        return bool(self._workers)

    @property
    def queued(self) -> int:
        return self._queue.qsize()

    async def start(self) -> None:
        if self._workers:
            return
        self._workers = [asyncio.create_task(self._work(n), name=f"ingest-worker-{n}") for n in range(self._worker_count)]
        logger.info(f"Ingestion runner started with {self._worker_count} workers")

    def submit(self, job: IngestionJob) -> None:
        try:
            self._queue.put_nowait(job)
        except asyncio.QueueFull as e:
            raise IngestionBacklogFull(f"Ingestion queue is full ({self._queue.maxsize} jobs)") from e

    async def drain(self) -> None:
        await self._queue.join()

    async def stop(self) -> None:
        if not self._workers:
            return
        await self.drain()
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

    async def _work(self, n: int) -> None:
        while True:
            job = await self._queue.get()
            try:
                report = await self._pipeline.ingest(job.document_id, job.data, job.media_type)
                self.recent.append(report)
            except Exception:
                self.crashes += 1
                logger.exception(f"Ingestion worker {n} crashed on doc_id={job.document_id}")
            finally:
                self._queue.task_done()
