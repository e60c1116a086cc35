"""SQLAlchemy (async) implementation of the repository protocol."""
from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, List, Optional

from loguru import logger
from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from docchat.core.errors import PersistenceError
from docchat.db import models
from docchat.db.records import (
    ChatMessageRecord,
    ChatSessionRecord,
    ChunkDraft,
    ChunkRecord,
    DocumentRecord,
    DocumentStatus,
    MessageRole,
    NewDocument,
    UserRecord,
    checked_text,
)
from docchat.db.session import Base, build_engine, build_sessionmaker


def _user(row: models.User) -> UserRecord:
    return UserRecord(id=row.id, subject_id=row.subject_id, email=row.email, display_name=row.display_name, created_at=row.created_at)


def _document(row: models.Document) -> DocumentRecord:
    return DocumentRecord(
        id=row.id,
        user_id=row.user_id,
        file_name=row.file_name,
        original_name=row.original_name,
        file_type=row.file_type,
        file_size=row.file_size,
        storage_path=row.storage_path,
        extracted_text=row.extracted_text,
        processing_status=DocumentStatus(row.processing_status),
        uploaded_at=row.uploaded_at,
    )


def _chunk(row: models.DocumentChunk) -> ChunkRecord:
    return ChunkRecord(id=row.id, document_id=row.document_id, chunk_index=row.chunk_index, content=row.content, word_count=row.word_count)


def _session(row: models.ChatSession) -> ChatSessionRecord:
    return ChatSessionRecord(id=row.id, user_id=row.user_id, document_id=row.document_id, created_at=row.created_at)


def _message(row: models.ChatMessage) -> ChatMessageRecord:
    return ChatMessageRecord(id=row.id, session_id=row.session_id, role=MessageRole(row.role), content=row.content, timestamp=row.timestamp)


class SqlRepository:
    def __init__(self, database_url: str):
        self._engine = build_engine(database_url)
        self._sessionmaker = build_sessionmaker(self._engine)

    @asynccontextmanager
    async def _session(self, op: str) -> AsyncIterator[AsyncSession]:
        try:
            async with self._sessionmaker() as session:
                yield session
        except SQLAlchemyError as e:
            logger.warning(f"{op} failed: {e}")
            raise PersistenceError(f"{op} failed: {e}") from e

    async def initialize(self) -> None:
        try:
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except SQLAlchemyError as e:
            raise PersistenceError(f"schema creation failed: {e}") from e

    async def close(self) -> None:
        await self._engine.dispose()

    async def get_user_by_subject(self, subject_id: str) -> Optional[UserRecord]:
        async with self._session("get_user_by_subject") as db:
            res = await db.execute(select(models.User).where(models.User.subject_id == subject_id))
            row = res.scalar_one_or_none()
            return _user(row) if row else None

    async def create_user(self, subject_id: str, email: str, display_name: Optional[str]) -> UserRecord:
        async with self._session("create_user") as db:
            row = models.User(subject_id=subject_id, email=email, display_name=display_name)
            db.add(row)
            await db.commit()
            await db.refresh(row)
            return _user(row)

    async def create_document(self, meta: NewDocument) -> DocumentRecord:
        async with self._session("create_document") as db:
            row = models.Document(
                user_id=meta.user_id,
                file_name=meta.file_name,
                original_name=meta.original_name,
                file_type=meta.file_type,
                file_size=meta.file_size,
                storage_path=meta.storage_path,
                processing_status=meta.processing_status.value,
            )
            db.add(row)
            await db.commit()
            await db.refresh(row)
            return _document(row)

    async def get_document(self, document_id: int) -> Optional[DocumentRecord]:
        async with self._session("get_document") as db:
            row = await db.get(models.Document, document_id)
            return _document(row) if row else None

    async def list_documents(self, user_id: int) -> List[DocumentRecord]:
        async with self._session("list_documents") as db:
            res = await db.execute(
                select(models.Document)
                .where(models.Document.user_id == user_id)
                .order_by(models.Document.uploaded_at.desc(), models.Document.id.desc())
            )
            return [_document(r) for r in res.scalars().all()]

    async def update_document_status(self, document_id: int, status: DocumentStatus, text: Optional[str] = None) -> None:
        stored_text = checked_text(status, text)
        async with self._session("update_document_status") as db:
            row = await db.get(models.Document, document_id)
            if not row:
                raise PersistenceError(f"document {document_id} does not exist")
            row.processing_status = status.value
            row.extracted_text = stored_text
            await db.commit()

    async def delete_document(self, document_id: int) -> None:
        async with self._session("delete_document") as db:
            session_ids = select(models.ChatSession.id).where(models.ChatSession.document_id == document_id)
            await db.execute(delete(models.ChatMessage).where(models.ChatMessage.session_id.in_(session_ids)))
            await db.execute(delete(models.ChatSession).where(models.ChatSession.document_id == document_id))
            await db.execute(delete(models.DocumentChunk).where(models.DocumentChunk.document_id == document_id))
            await db.execute(delete(models.Document).where(models.Document.id == document_id))
            await db.commit()

    async def create_chunks(self, chunks: List[ChunkDraft]) -> List[ChunkRecord]:
        async with self._session("create_chunks") as db:
            rows = [
                models.DocumentChunk(document_id=c.document_id, chunk_index=c.chunk_index, content=c.content, word_count=c.word_count)
                for c in chunks
            ]
            db.add_all(rows)
            await db.commit()
            return [_chunk(r) for r in rows]

    async def get_chunks(self, document_id: int) -> List[ChunkRecord]:
        async with self._session("get_chunks") as db:
            res = await db.execute(
                select(models.DocumentChunk)
                .where(models.DocumentChunk.document_id == document_id)
                .order_by(models.DocumentChunk.chunk_index)
            )
            return [_chunk(r) for r in res.scalars().all()]

    async def create_chat_session(self, user_id: int, document_id: int) -> ChatSessionRecord:
        async with self._session("create_chat_session") as db:
            row = models.ChatSession(user_id=user_id, document_id=document_id)
            db.add(row)
            await db.commit()
            await db.refresh(row)
            return _session(row)

    async def get_session(self, session_id: int) -> Optional[ChatSessionRecord]:
        async with self._session("get_session") as db:
            row = await db.get(models.ChatSession, session_id)
            return _session(row) if row else None

    async def list_sessions(self, user_id: int) -> List[ChatSessionRecord]:
        async with self._session("list_sessions") as db:
            res = await db.execute(
                select(models.ChatSession)
                .where(models.ChatSession.user_id == user_id)
                .order_by(models.ChatSession.created_at.desc(), models.ChatSession.id.desc())
            )
            return [_session(r) for r in res.scalars().all()]

    async def create_message(self, session_id: int, role: MessageRole, content: str) -> ChatMessageRecord:
        async with self._session("create_message") as db:
            row = models.ChatMessage(session_id=session_id, role=role.value, content=content)
            db.add(row)
            await db.commit()
            await db.refresh(row)
            return _message(row)

    async def get_messages(self, session_id: int) -> List[ChatMessageRecord]:
        async with self._session("get_messages") as db:
            res = await db.execute(
                select(models.ChatMessage)
                .where(models.ChatMessage.session_id == session_id)
                .order_by(models.ChatMessage.timestamp, models.ChatMessage.id)
            )
            return [_message(r) for r in res.scalars().all()]
