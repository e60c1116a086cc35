"""Text extraction for uploaded files.

PDF extraction never raises: image-only and unreadable files come back as a
placeholder text tagged with the reason, so ingestion still reaches a
terminal status and the reason is visible in the stored text.
"""
import io
from dataclasses import dataclass
from enum import Enum

import fitz  # PyMuPDF
import pdfplumber
from loguru import logger

from docchat.core.errors import ExtractionFailed, UnsupportedMediaType

PDF = "application/pdf"
TEXT = "text/plain"
SUPPORTED = {PDF, TEXT}
_ALIASES = {"pdf": PDF}

IMAGE_ONLY_PLACEHOLDER = (
    "This PDF appears to contain primarily images or scanned content. Text extraction was not successful. "
    "Please ensure the PDF contains selectable text or consider using OCR processing for image-based documents."
)

UNREADABLE_PLACEHOLDER = """Unable to extract text from this PDF file. This could be due to:
1. The PDF contains only images/scanned content (requires OCR)
2. The PDF is password protected
3. The PDF format is not supported
4. The file may be corrupted

Please try uploading a text-based PDF or a .txt file instead."""


class ExtractionOutcome(str, Enum):
    EXTRACTED = "extracted"
    IMAGE_ONLY = "image_only"
    UNREADABLE = "unreadable"


@dataclass(frozen=True)
class ExtractionResult:
    text: str
    outcome: ExtractionOutcome

    @property
    def is_placeholder(self) -> bool:
        return self.outcome is not ExtractionOutcome.EXTRACTED


def normalize_media_type(media_type: str) -> str:
    base = (media_type or "").split(";")[0].strip().lower()
    return _ALIASES.get(base, base)


def _pymupdf_text(data: bytes) -> str:
    with fitz.open(stream=data, filetype="pdf") as doc:
        if doc.needs_pass:
            raise ValueError("PDF is encrypted")
        return "\n".join(page.get_text("text", sort=True) for page in doc)


def _pdfplumber_text(data: bytes) -> str:
    with pdfplumber.open(io.BytesIO(data)) as pdf:
        return "\n".join(page.extract_text() or "" for page in pdf.pages)


def parse_pdf(data: bytes) -> ExtractionResult:
    logger.debug(f"Attempting to parse PDF: {len(data)} bytes")
    try:
        text = _pymupdf_text(data).strip()
    except Exception as first_error:
        logger.warning(f"PDF parsing error, retrying with relaxed parser: {first_error}")
        try:
            text = _pdfplumber_text(data).strip()
        except Exception as second_error:
            logger.error(f"Secondary PDF parsing also failed: {second_error}")
            return ExtractionResult(UNREADABLE_PLACEHOLDER, ExtractionOutcome.UNREADABLE)
        if not text:
            return ExtractionResult(UNREADABLE_PLACEHOLDER, ExtractionOutcome.UNREADABLE)
        logger.info(f"PDF parsing (fallback) successful: {len(text)} characters extracted")
        return ExtractionResult(text, ExtractionOutcome.EXTRACTED)
    if not text:
        logger.info("PDF parsing: no text content found")
        return ExtractionResult(IMAGE_ONLY_PLACEHOLDER, ExtractionOutcome.IMAGE_ONLY)
    logger.debug(f"PDF parsing successful: {len(text)} characters extracted")
    return ExtractionResult(text, ExtractionOutcome.EXTRACTED)


def parse_txt(data: bytes) -> ExtractionResult:
    try:
        return ExtractionResult(data.decode("utf-8"), ExtractionOutcome.EXTRACTED)
    except UnicodeDecodeError as e:
        raise ExtractionFailed(f"text/plain upload is not valid UTF-8: {e}") from e


def extract(data: bytes, media_type: str) -> ExtractionResult:
    kind = normalize_media_type(media_type)
    if kind == PDF:
        return parse_pdf(data)
    if kind == TEXT:
        return parse_txt(data)
    raise UnsupportedMediaType(media_type)
