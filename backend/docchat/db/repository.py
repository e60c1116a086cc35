"""Repository protocol consumed by the ingestion pipeline, chat service and routes."""
from __future__ import annotations

from typing import List, Optional, Protocol

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
)


class Repository(Protocol):
    async def initialize(self) -> None:
        """Prepare the backing store (create tables, buckets...)."""
        ...

    async def close(self) -> None:
        ...

    async def get_user_by_subject(self, subject_id: str) -> Optional[UserRecord]:
        ...

    async def create_user(self, subject_id: str, email: str, display_name: Optional[str]) -> UserRecord:
        ...

    async def create_document(self, meta: NewDocument) -> DocumentRecord:
        ...

    async def get_document(self, document_id: int) -> Optional[DocumentRecord]:
        ...

    async def list_documents(self, user_id: int) -> List[DocumentRecord]:
        """Documents owned by ``user_id``, newest first."""
        ...

    async def update_document_status(self, document_id: int, status: DocumentStatus, text: Optional[str] = None) -> None:
        ...

    async def delete_document(self, document_id: int) -> None:
        """Delete a document with its chunks, chat sessions and their messages."""
        ...

    async def create_chunks(self, chunks: List[ChunkDraft]) -> List[ChunkRecord]:
        ...

    async def get_chunks(self, document_id: int) -> List[ChunkRecord]:
        """Chunks ordered by chunk_index."""
        ...

    async def create_chat_session(self, user_id: int, document_id: int) -> ChatSessionRecord:
        ...

    async def get_session(self, session_id: int) -> Optional[ChatSessionRecord]:
        ...

    async def list_sessions(self, user_id: int) -> List[ChatSessionRecord]:
        ...

    async def create_message(self, session_id: int, role: MessageRole, content: str) -> ChatMessageRecord:
        ...

    async def get_messages(self, session_id: int) -> List[ChatMessageRecord]:
        """Messages ordered by timestamp ascending, id breaking ties."""
        ...
