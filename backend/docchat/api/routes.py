import asyncio
import pathlib

from fastapi import APIRouter, UploadFile, File, Depends, HTTPException
from fastapi.concurrency import run_in_threadpool
from loguru import logger

from docchat.api.deps import get_current_user, get_services
from docchat.core.container import Services
from docchat.core.errors import (
    DocumentNotFound,
    DocumentNotReady,
    IngestionBacklogFull,
    ModelUnavailable,
    PersistenceError,
    SessionNotFound,
)
from docchat.db.records import DocumentRecord, DocumentStatus, NewDocument, UserRecord
from docchat.schemas.base import (
    DiagnosticsOut,
    DocumentOut,
    ExchangeOut,
    HealthResponse,
    IngestionReportOut,
    MessageCreate,
    MessageOut,
    SessionCreate,
    SessionOut,
    SummaryOut,
    UserOut,
)
from docchat.services import extraction
from docchat.services.tasks import IngestionJob

router = APIRouter(prefix="/api")


async def _owned_document(services: Services, user: UserRecord, document_id: int) -> DocumentRecord:
    doc = await services.repository.get_document(document_id)
    if not doc or doc.user_id != user.id:
        raise HTTPException(status_code=404, detail="Document not found")
    return doc


@router.get("/health", response_model=HealthResponse)
async def health():
    return {"status": "ok"}


@router.get("/user", response_model=UserOut)
async def current_user(user: UserRecord = Depends(get_current_user)):
    return user


@router.get("/diagnostics", response_model=DiagnosticsOut)
async def diagnostics(_: UserRecord = Depends(get_current_user), services: Services = Depends(get_services)):
    runner = services.runner
    recent = [
        IngestionReportOut(
            document_id=r.document_id,
            status=r.status.value,
            chunks=r.chunks,
            outcome=r.outcome.value if r.outcome else None,
            error=r.error,
        )
        for r in reversed(runner.recent)
    ]
    return DiagnosticsOut(runner_active=runner.running, queued=runner.queued, crashes=runner.crashes, recent=recent)


@router.post("/documents/upload", response_model=DocumentOut)
async def upload(
    file: UploadFile = File(...),
    user: UserRecord = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    settings = services.settings
    media_type = extraction.normalize_media_type(file.content_type or "")
    if media_type not in extraction.SUPPORTED:
        raise HTTPException(status_code=400, detail="Only PDF and TXT files are allowed")
    content = await file.read()
    if len(content) > settings.max_upload_bytes:
        raise HTTPException(status_code=413, detail="File too large")
    original_name = file.filename or "upload"
    storage_path = await run_in_threadpool(services.blob_store.put, content, original_name, media_type, user.subject_id)
    try:
        doc = await services.repository.create_document(
            NewDocument(
                user_id=user.id,
                file_name=pathlib.PurePath(storage_path).name,
                original_name=original_name,
                file_type=media_type,
                file_size=len(content),
                storage_path=storage_path,
            )
        )
    except PersistenceError:
        await run_in_threadpool(services.blob_store.delete, storage_path)
        raise
    logger.info(f"Stored file {original_name} as {storage_path} (doc_id={doc.id})")

    if settings.sync_ingest:
        report = await services.pipeline.ingest(doc.id, content, media_type)
        services.runner.recent.append(report)
        return await services.repository.get_document(doc.id) or doc

    try:
        services.runner.submit(IngestionJob(doc.id, content, media_type))
    except IngestionBacklogFull as e:
        logger.warning(f"Rejecting ingestion of doc_id={doc.id}: {e}")
        await services.repository.update_document_status(doc.id, DocumentStatus.FAILED)
        raise HTTPException(status_code=503, detail="Document processing is busy, please retry shortly")
    return doc


@router.get("/documents", response_model=list[DocumentOut])
async def list_documents(user: UserRecord = Depends(get_current_user), services: Services = Depends(get_services)):
    return await services.repository.list_documents(user.id)


@router.delete("/documents/{document_id}")
async def delete_document(document_id: int, user: UserRecord = Depends(get_current_user), services: Services = Depends(get_services)):
    doc = await _owned_document(services, user, document_id)
    await run_in_threadpool(services.blob_store.delete, doc.storage_path)
    await services.repository.delete_document(document_id)
    return {"message": "Document deleted successfully", "document_id": document_id}


@router.get("/documents/{document_id}/summary", response_model=SummaryOut)
async def summarize(document_id: int, user: UserRecord = Depends(get_current_user), services: Services = Depends(get_services)):
    doc = await _owned_document(services, user, document_id)
    if doc.processing_status is not DocumentStatus.COMPLETED or not doc.extracted_text:
        raise HTTPException(status_code=400, detail=DocumentNotReady(doc.id, doc.processing_status.value).message)
    try:
        summary = await asyncio.wait_for(services.llm.summarize(doc.extracted_text), timeout=services.settings.generation_timeout_s)
    except (ModelUnavailable, asyncio.TimeoutError) as e:
        logger.warning(f"Summarization failed for doc_id={doc.id}: {e!r}")
        raise HTTPException(status_code=502, detail="Failed to summarize document.")
    return SummaryOut(document_id=doc.id, summary=summary)


@router.post("/chat/sessions", response_model=SessionOut)
async def create_session(payload: SessionCreate, user: UserRecord = Depends(get_current_user), services: Services = Depends(get_services)):
    try:
        return await services.chat.start_session(user, payload.document_id)
    except DocumentNotFound:
        raise HTTPException(status_code=404, detail="Document not found")
    except DocumentNotReady as e:
        raise HTTPException(status_code=400, detail=e.message)


@router.get("/chat/sessions", response_model=list[SessionOut])
async def list_sessions(user: UserRecord = Depends(get_current_user), services: Services = Depends(get_services)):
    return await services.repository.list_sessions(user.id)


@router.get("/chat/sessions/{session_id}/messages", response_model=list[MessageOut])
async def list_messages(session_id: int, user: UserRecord = Depends(get_current_user), services: Services = Depends(get_services)):
    try:
        session = await services.chat.owned_session(user, session_id)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Chat session not found")
    return await services.repository.get_messages(session.id)


@router.post("/chat/sessions/{session_id}/messages", response_model=ExchangeOut)
async def send_message(
    session_id: int,
    payload: MessageCreate,
    user: UserRecord = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    if not payload.content.strip():
        raise HTTPException(status_code=400, detail="Message content is required")
    try:
        session = await services.chat.owned_session(user, session_id)
    except SessionNotFound:
        raise HTTPException(status_code=404, detail="Chat session not found")
    try:
        exchange = await services.chat.send_message(session, payload.content)
    except ModelUnavailable as e:
        raise HTTPException(status_code=502, detail=e.message)
    return ExchangeOut(
        user_message=MessageOut.model_validate(exchange.user_message),
        ai_message=MessageOut.model_validate(exchange.ai_message),
    )
