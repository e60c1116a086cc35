from datetime import datetime
from pydantic import BaseModel, Field
from typing import List, Optional
from docchat.db.records import DocumentStatus, MessageRole


class UserOut(BaseModel):
    id: int
    subject_id: str
    email: str
    display_name: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class DocumentOut(BaseModel):
    id: int
    user_id: int
    file_name: str
    original_name: str
    file_type: str
    file_size: int
    storage_path: str
    extracted_text: Optional[str] = None
    processing_status: DocumentStatus
    uploaded_at: datetime

    class Config:
        from_attributes = True


class SessionCreate(BaseModel):
    document_id: int


class SessionOut(BaseModel):
    id: int
    user_id: int
    document_id: int
    created_at: datetime

    class Config:
        from_attributes = True


class MessageCreate(BaseModel):
    content: str = Field(..., max_length=20000)


class MessageOut(BaseModel):
    id: int
    session_id: int
    role: MessageRole
    content: str
    timestamp: datetime

    class Config:
        from_attributes = True


class ExchangeOut(BaseModel):
    user_message: MessageOut
    ai_message: MessageOut


class SummaryOut(BaseModel):
    document_id: int
    summary: str


class IngestionReportOut(BaseModel):
    document_id: int
    status: str
    chunks: int
    outcome: Optional[str] = None
    error: Optional[str] = None


class DiagnosticsOut(BaseModel):
    runner_active: bool
    queued: int
    crashes: int
    recent: List[IngestionReportOut]


class HealthResponse(BaseModel):
    status: str
