"""Exception hierarchy for DocChat.

    DocChatError
    +-- UnsupportedMediaType   upload or extraction of a type other than PDF/TXT
    +-- ExtractionFailed       text/plain bytes that are not valid UTF-8
    +-- EmptyExtractedText     nothing left to chunk after extraction
    +-- PersistenceError       repository failure
    +-- InvalidToken           bearer token could not be resolved to a principal
    +-- ModelUnavailable       the language model call failed or timed out
    +-- DocumentNotFound / SessionNotFound
    +-- DocumentNotReady       chat requested on a document that is not completed
    +-- IngestionBacklogFull   the ingestion queue cannot take another job

Ingestion errors never leave the orchestrator; they only show up as the
document's terminal status. Everything else is translated to an HTTP status
by the API layer.
"""
from typing import Optional


class DocChatError(Exception):
    def __init__(self, message: str = "An unexpected error occurred"):
        self.message = message
        super().__init__(message)


class UnsupportedMediaType(DocChatError):
    def __init__(self, media_type: Optional[str]):
        self.media_type = media_type
        super().__init__(f"Unsupported media type: {media_type!r}")


class ExtractionFailed(DocChatError):
    pass


class EmptyExtractedText(DocChatError):
    def __init__(self, document_id: int):
        self.document_id = document_id
        super().__init__(f"No text to chunk for document {document_id}")


class PersistenceError(DocChatError):
    pass


class InvalidToken(DocChatError):
    pass


class ModelUnavailable(DocChatError):
    pass


class DocumentNotFound(DocChatError):
    def __init__(self, document_id: int):
        self.document_id = document_id
        super().__init__(f"Document {document_id} not found")


class SessionNotFound(DocChatError):
    def __init__(self, session_id: int):
        self.session_id = session_id
        super().__init__(f"Chat session {session_id} not found")


class DocumentNotReady(DocChatError):
    def __init__(self, document_id: int, status: str):
        self.document_id = document_id
        self.status = status
        if status == "failed":
            message = "Document processing failed"
        else:
            message = "Document is still being processed"
        super().__init__(message)


class IngestionBacklogFull(DocChatError):
    pass
