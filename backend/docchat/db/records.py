"""Plain data records shared by every repository implementation."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class DocumentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class MessageRole(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class UserRecord:
    id: int
    subject_id: str
    email: str
    display_name: Optional[str]
    created_at: datetime


@dataclass
class NewDocument:
    user_id: int
    file_name: str
    original_name: str
    file_type: str
    file_size: int
    storage_path: str
    processing_status: DocumentStatus = DocumentStatus.PROCESSING


@dataclass
class DocumentRecord:
    id: int
    user_id: int
    file_name: str
    original_name: str
    file_type: str
    file_size: int
    storage_path: str
    extracted_text: Optional[str]
    processing_status: DocumentStatus
    uploaded_at: datetime


@dataclass
class ChunkDraft:
    document_id: int
    chunk_index: int
    content: str
    word_count: int


@dataclass
class ChunkRecord:
    id: int
    document_id: int
    chunk_index: int
    content: str
    word_count: int


@dataclass
class ChatSessionRecord:
    id: int
    user_id: int
    document_id: int
    created_at: datetime


@dataclass
class ChatMessageRecord:
    id: int
    session_id: int
    role: MessageRole
    content: str
    timestamp: datetime


def checked_text(status: DocumentStatus, text: Optional[str]) -> Optional[str]:
    """Return the extracted text to store alongside ``status``.

    Text is kept only for completed documents; a completed document must have it.
    """
    if status is DocumentStatus.COMPLETED:
        if text is None:
            raise ValueError("completed documents require extracted text")
        return text
    return None
