"""Simple in-memory store for users, documents, chunks and chat history.
Not persistent, single-process only. Enabled via settings.use_in_memory = True.
"""
from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from itertools import count
from threading import RLock
from typing import Dict, List, Optional

from docchat.core.errors import PersistenceError
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


def _now() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryRepository:
    def __init__(self) -> None:
        self._lock = RLock()
        self.reset()

    def reset(self):
        with self._lock:
            self._users: Dict[int, UserRecord] = {}
            self._docs: Dict[int, DocumentRecord] = {}
            self._chunks: Dict[int, List[ChunkRecord]] = {}
            self._sessions: Dict[int, ChatSessionRecord] = {}
            self._messages: Dict[int, List[ChatMessageRecord]] = {}
            self._ids = {name: count(1) for name in ("user", "document", "chunk", "session", "message")}

    async def initialize(self) -> None:
        return None

    async def close(self) -> None:
        return None

    async def get_user_by_subject(self, subject_id: str) -> Optional[UserRecord]:
        with self._lock:
            for user in self._users.values():
                if user.subject_id == subject_id:
                    return user
        return None

    async def create_user(self, subject_id: str, email: str, display_name: Optional[str]) -> UserRecord:
        with self._lock:
            if any(u.subject_id == subject_id for u in self._users.values()):
                raise PersistenceError(f"user {subject_id!r} already exists")
            user = UserRecord(
                id=next(self._ids["user"]),
                subject_id=subject_id,
                email=email,
                display_name=display_name,
                created_at=_now(),
            )
            self._users[user.id] = user
            return user

    async def create_document(self, meta: NewDocument) -> DocumentRecord:
        with self._lock:
            doc = DocumentRecord(
                id=next(self._ids["document"]),
                user_id=meta.user_id,
                file_name=meta.file_name,
                original_name=meta.original_name,
                file_type=meta.file_type,
                file_size=meta.file_size,
                storage_path=meta.storage_path,
                extracted_text=None,
                processing_status=meta.processing_status,
                uploaded_at=_now(),
            )
            self._docs[doc.id] = doc
            self._chunks[doc.id] = []
            return replace(doc)

    async def get_document(self, document_id: int) -> Optional[DocumentRecord]:
        with self._lock:
            doc = self._docs.get(document_id)
            return replace(doc) if doc else None

    async def list_documents(self, user_id: int) -> List[DocumentRecord]:
        with self._lock:
            docs = [replace(d) for d in self._docs.values() if d.user_id == user_id]
        return sorted(docs, key=lambda d: (d.uploaded_at, d.id), reverse=True)

    async def update_document_status(self, document_id: int, status: DocumentStatus, text: Optional[str] = None) -> None:
        stored_text = checked_text(status, text)
        with self._lock:
            doc = self._docs.get(document_id)
            if not doc:
                raise PersistenceError(f"document {document_id} does not exist")
            doc.processing_status = status
            doc.extracted_text = stored_text

    async def delete_document(self, document_id: int) -> None:
        with self._lock:
            self._docs.pop(document_id, None)
            self._chunks.pop(document_id, None)
            orphaned = [s.id for s in self._sessions.values() if s.document_id == document_id]
            for session_id in orphaned:
                self._sessions.pop(session_id, None)
                self._messages.pop(session_id, None)

    async def create_chunks(self, chunks: List[ChunkDraft]) -> List[ChunkRecord]:
        created: List[ChunkRecord] = []
        with self._lock:
            for draft in chunks:
                if draft.document_id not in self._docs:
                    raise PersistenceError(f"document {draft.document_id} does not exist")
            for draft in chunks:
                rec = ChunkRecord(
                    id=next(self._ids["chunk"]),
                    document_id=draft.document_id,
                    chunk_index=draft.chunk_index,
                    content=draft.content,
                    word_count=draft.word_count,
                )
                self._chunks[draft.document_id].append(rec)
                created.append(rec)
        return created

    async def get_chunks(self, document_id: int) -> List[ChunkRecord]:
        with self._lock:
            arr = list(self._chunks.get(document_id, []))
        return sorted(arr, key=lambda c: c.chunk_index)

    async def create_chat_session(self, user_id: int, document_id: int) -> ChatSessionRecord:
        with self._lock:
            if document_id not in self._docs:
                raise PersistenceError(f"document {document_id} does not exist")
            session = ChatSessionRecord(
                id=next(self._ids["session"]),
                user_id=user_id,
                document_id=document_id,
                created_at=_now(),
            )
            self._sessions[session.id] = session
            self._messages[session.id] = []
            return replace(session)

    async def get_session(self, session_id: int) -> Optional[ChatSessionRecord]:
        with self._lock:
            session = self._sessions.get(session_id)
            return replace(session) if session else None

    async def list_sessions(self, user_id: int) -> List[ChatSessionRecord]:
        with self._lock:
            sessions = [s for s in self._sessions.values() if s.user_id == user_id]
        return sorted(sessions, key=lambda s: (s.created_at, s.id), reverse=True)

    async def create_message(self, session_id: int, role: MessageRole, content: str) -> ChatMessageRecord:
        with self._lock:
            if session_id not in self._sessions:
                raise PersistenceError(f"chat session {session_id} does not exist")
            msg = ChatMessageRecord(
                id=next(self._ids["message"]),
                session_id=session_id,
                role=role,
                content=content,
                timestamp=_now(),
            )
            self._messages[session_id].append(msg)
            return msg

    async def get_messages(self, session_id: int) -> List[ChatMessageRecord]:
        with self._lock:
            arr = list(self._messages.get(session_id, []))
        return sorted(arr, key=lambda m: (m.timestamp, m.id))
