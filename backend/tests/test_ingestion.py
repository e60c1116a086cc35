import asyncio

import fitz  # PyMuPDF
import pytest

from docchat.core.errors import IngestionBacklogFull, PersistenceError
from docchat.db.memdb import InMemoryRepository
from docchat.db.records import DocumentStatus, NewDocument
from docchat.services import extraction
from docchat.services.extraction import ExtractionOutcome
from docchat.services.tasks import IngestionJob, IngestionPipeline, IngestionReport, IngestionRunner

NINE_WORDS = b"Alpha beta gamma delta epsilon zeta eta theta iota."


async def _new_doc(repo, file_type="text/plain"):
    return await repo.create_document(
        NewDocument(user_id=1, file_name="1_a.txt", original_name="a.txt", file_type=file_type, file_size=10, storage_path="documents/u/1_a.txt")
    )


@pytest.mark.asyncio
async def test_plain_text_document_completes_with_single_chunk(repo, settings):
    doc = await _new_doc(repo)
    report = await IngestionPipeline(repo, settings).ingest(doc.id, NINE_WORDS, "text/plain")

    assert report.status is DocumentStatus.COMPLETED
    assert report.chunks == 1
    stored = await repo.get_document(doc.id)
    assert stored.processing_status is DocumentStatus.COMPLETED
    assert stored.extracted_text == NINE_WORDS.decode()
    chunks = await repo.get_chunks(doc.id)
    assert [c.chunk_index for c in chunks] == [0]
    assert chunks[0].word_count == 9


@pytest.mark.asyncio
async def test_long_document_chunk_indices_are_contiguous(repo, settings):
    doc = await _new_doc(repo)
    body = " ".join(f"Statement {i} is recorded here." for i in range(400)).encode()
    report = await IngestionPipeline(repo, settings).ingest(doc.id, body, "text/plain")

    chunks = await repo.get_chunks(doc.id)
    assert report.chunks == len(chunks) > 1
    assert [c.chunk_index for c in chunks] == list(range(len(chunks)))
    assert all(len(c.content) <= settings.max_chunk_size for c in chunks)


@pytest.mark.asyncio
async def test_blank_plain_text_fails(repo, settings):
    doc = await _new_doc(repo)
    report = await IngestionPipeline(repo, settings).ingest(doc.id, b"   \n\t ", "text/plain")

    assert report.status is DocumentStatus.FAILED
    stored = await repo.get_document(doc.id)
    assert stored.processing_status is DocumentStatus.FAILED
    assert stored.extracted_text is None
    assert await repo.get_chunks(doc.id) == []


@pytest.mark.asyncio
async def test_undecodable_plain_text_fails(repo, settings):
    doc = await _new_doc(repo)
    report = await IngestionPipeline(repo, settings).ingest(doc.id, b"\xff\xfe\xfa", "text/plain")
    assert report.status is DocumentStatus.FAILED
    assert "UTF-8" in report.error


@pytest.mark.asyncio
async def test_image_only_pdf_completes_with_placeholder(repo, settings):
    pdf = fitz.open()
    pdf.new_page()
    data = pdf.tobytes()
    pdf.close()
    doc = await _new_doc(repo, "application/pdf")

    report = await IngestionPipeline(repo, settings).ingest(doc.id, data, "application/pdf")

    assert report.status is DocumentStatus.COMPLETED
    assert report.outcome is ExtractionOutcome.IMAGE_ONLY
    stored = await repo.get_document(doc.id)
    assert stored.extracted_text == extraction.IMAGE_ONLY_PLACEHOLDER


@pytest.mark.asyncio
async def test_punctuation_only_text_fails(repo, settings):
    doc = await _new_doc(repo)
    report = await IngestionPipeline(repo, settings).ingest(doc.id, b"!" * 5000, "text/plain")
    assert report.status is DocumentStatus.FAILED


class ChunkWriteFailingRepository(InMemoryRepository):
    async def create_chunks(self, chunks):
        raise PersistenceError("create_chunks failed: disk full")


class ExplodingRepository(InMemoryRepository):
    async def create_chunks(self, chunks):
        raise RuntimeError("unexpected")


@pytest.mark.asyncio
@pytest.mark.parametrize("repo_cls", [ChunkWriteFailingRepository, ExplodingRepository])
async def test_persistence_errors_mark_document_failed(repo_cls, settings):
    repo = repo_cls()
    doc = await _new_doc(repo)
    report = await IngestionPipeline(repo, settings).ingest(doc.id, NINE_WORDS, "text/plain")

    assert report.status is DocumentStatus.FAILED
    assert (await repo.get_document(doc.id)).processing_status is DocumentStatus.FAILED


@pytest.mark.asyncio
async def test_runner_processes_jobs_in_background(repo, settings):
    pipeline = IngestionPipeline(repo, settings)
    runner = IngestionRunner(pipeline, workers=2, queue_size=10)
    await runner.start()
    docs = [await _new_doc(repo) for _ in range(3)]
    for doc in docs:
        runner.submit(IngestionJob(doc.id, NINE_WORDS, "text/plain"))

    await runner.drain()
    for doc in docs:
        assert (await repo.get_document(doc.id)).processing_status is DocumentStatus.COMPLETED
    assert len(runner.recent) == 3
    await runner.stop()
    assert not runner.running


@pytest.mark.asyncio
async def test_runner_rejects_jobs_when_queue_full(repo, settings):
    runner = IngestionRunner(IngestionPipeline(repo, settings), workers=1, queue_size=1)
    runner.submit(IngestionJob(1, b"a", "text/plain"))
    with pytest.raises(IngestionBacklogFull):
        runner.submit(IngestionJob(2, b"b", "text/plain"))


class CrashingPipeline:
    def __init__(self):
        self.seen = []

    async def ingest(self, document_id, data, media_type):
        self.seen.append(document_id)
        if document_id == 1:
            raise RuntimeError("worker crash")
        return IngestionReport(document_id, DocumentStatus.COMPLETED, chunks=1)


@pytest.mark.asyncio
async def test_runner_survives_and_counts_crashes():
    pipeline = CrashingPipeline()
    runner = IngestionRunner(pipeline, workers=1, queue_size=5)
    await runner.start()
    runner.submit(IngestionJob(1, b"x", "text/plain"))
    runner.submit(IngestionJob(2, b"y", "text/plain"))

    await asyncio.wait_for(runner.drain(), timeout=5)
    assert pipeline.seen == [1, 2]
    assert runner.crashes == 1
    assert [r.document_id for r in runner.recent] == [2]
    await runner.stop()
