"""
Text Extractor

Converts raw uploaded bytes into normalized plain text.

Responsibilities
----------------
- Resolve the declared MIME type / file name into a `FileKind` exactly once
- Extract text per kind (pypdf for PDF, python-docx for DOCX, UTF-8 for text)
- Fall back to a byte-level literal scan for PDFs with no text layer
- Normalize whitespace and strip non-printable characters

Every function here is a pure transform. Failures raise one of the
`ExtractionError` subclasses so the upload pipeline can record them per
file without aborting the batch.
"""

from __future__ import annotations

import io
import logging
import re

from docx import Document
from pypdf import PdfReader

from .models import ExtractedText, FileKind
from ..core.errors import (
    EmptyDocument,
    ExtractionError,
    NoExtractableText,
    UnsupportedFileType,
)

logger = logging.getLogger("docchat.extractor")


# ---------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------

PDF_MIME_TYPES = {"application/pdf"}
DOCX_MIME_TYPES = {
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/msword",
}

PDF_EXTENSIONS = (".pdf",)
DOCX_EXTENSIONS = (".docx", ".doc")
TEXT_EXTENSIONS = (".txt", ".md")

_NON_PRINTABLE = re.compile(r"[^\x20-\x7E\n\t]")
_INLINE_WHITESPACE = re.compile(r"[ \t]+")
_BLANK_LINES = re.compile(r"\n{3,}")

# Literal string tokens inside PDF content streams: "(Hello world) Tj"
_PDF_LITERAL = re.compile(r"\(([^)]*)\)")
_PDF_READABLE = re.compile(r"^[a-zA-Z0-9\s.,!?;:()-]+$")
_FALLBACK_MIN_LENGTH = 3
_FALLBACK_MAX_LENGTH = 199


# ---------------------------------------------------------------------
# File Kind Resolution
# ---------------------------------------------------------------------

def resolve_file_kind(mime_type: str | None, file_name: str) -> FileKind:
    """
    Map a declared MIME type and file name to a `FileKind`.

    The MIME type wins when it is recognized; the extension is consulted
    otherwise (browsers often send `application/octet-stream`).

    Raises
    ------
    UnsupportedFileType
        If neither the MIME type nor the extension is supported.
    """
    mime = (mime_type or "").lower().split(";")[0].strip()
    name = file_name.lower()

    if mime in PDF_MIME_TYPES or name.endswith(PDF_EXTENSIONS):
        return FileKind.PDF
    if mime in DOCX_MIME_TYPES or "word" in mime or name.endswith(DOCX_EXTENSIONS):
        return FileKind.DOCX
    if mime.startswith("text/") or name.endswith(TEXT_EXTENSIONS):
        return FileKind.TEXT

    raise UnsupportedFileType(f"Unsupported file type: {mime or 'unknown'} ({file_name})")


# ---------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------

def extract_text(data: bytes, mime_type: str | None, file_name: str) -> ExtractedText:
    """
    Extract and clean text from an uploaded file.

    Parameters
    ----------
    data : bytes
        Raw file content.
    mime_type : str | None
        Declared MIME type from the upload.
    file_name : str
        Original file name.

    Returns
    -------
    ExtractedText
        Cleaned text plus the page count (PDF only).

    Raises
    ------
    UnsupportedFileType, NoExtractableText, EmptyDocument, ExtractionError
    """
    kind = resolve_file_kind(mime_type, file_name)
    logger.info("Extracting text from %s (%s, %d bytes)", file_name, kind.value, len(data))

    if kind is FileKind.PDF:
        raw = _extract_pdf(data, file_name)
    elif kind is FileKind.DOCX:
        raw = ExtractedText(text=_extract_docx(data, file_name))
    elif kind is FileKind.TEXT:
        raw = ExtractedText(text=data.decode("utf-8", errors="replace"))
    else:  # pragma: no cover - exhaustive over FileKind
        raise UnsupportedFileType(f"Unsupported file kind: {kind}")

    text = clean_extracted_text(raw.text)
    if not text:
        raise NoExtractableText(f"No text content could be extracted from {file_name}")

    logger.info("Extracted %d characters from %s", len(text), file_name)
    return ExtractedText(text=text, page_count=raw.page_count, used_fallback=raw.used_fallback)


def clean_extracted_text(text: str) -> str:
    """
    Normalize extracted text.

    - Non-printable and non-ASCII characters become spaces (newlines and
      tabs survive this step).
    - Runs of spaces/tabs collapse to a single space; lines are trimmed.
    - Two or more blank lines collapse into one paragraph break.
    """
    if not text:
        return ""

    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _NON_PRINTABLE.sub(" ", text)
    text = _INLINE_WHITESPACE.sub(" ", text)
    text = "\n".join(line.strip() for line in text.split("\n"))
    text = _BLANK_LINES.sub("\n\n", text)
    return text.strip()


def extract_pdf_literals(data: bytes) -> str:
    """
    Byte-level fallback for PDFs whose text layer pypdf cannot read.

    Scans the raw stream for parenthesized string literals and keeps only
    readable ASCII runs of 3-199 characters.
    """
    pdf_string = data.decode("latin-1")
    parts = []

    for content in _PDF_LITERAL.findall(pdf_string):
        if not (_FALLBACK_MIN_LENGTH <= len(content) <= _FALLBACK_MAX_LENGTH):
            continue
        if "\\" in content or not _PDF_READABLE.match(content):
            continue
        parts.append(content)

    return " ".join(parts).strip()


# ---------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------

def _extract_pdf(data: bytes, file_name: str) -> ExtractedText:
    page_count = 0
    text = ""

    try:
        reader = PdfReader(io.BytesIO(data))
        page_count = len(reader.pages)
        text = "\n".join((page.extract_text() or "") for page in reader.pages)
    except Exception as exc:
        logger.warning(
            "PDF parsing failed for %s (%s), trying fallback extraction",
            file_name,
            type(exc).__name__,
        )

    if text.strip():
        return ExtractedText(text=text, page_count=page_count)

    fallback = extract_pdf_literals(data)
    if fallback:
        logger.info("Used fallback text extraction for %s", file_name)
        return ExtractedText(text=fallback, page_count=page_count, used_fallback=True)

    raise NoExtractableText(f"No readable text found in PDF {file_name}")


def _extract_docx(data: bytes, file_name: str) -> str:
    try:
        document = Document(io.BytesIO(data))
    except Exception as exc:
        raise ExtractionError(
            f"Failed to extract text from document {file_name}: {type(exc).__name__}",
            suggestion="Legacy .doc files must be re-saved as .docx.",
        ) from exc

    lines = [p.text for p in document.paragraphs]
    for table in document.tables:
        for row in table.rows:
            lines.append(" ".join(cell.text for cell in row.cells))

    text = "\n".join(lines)
    if not text.strip():
        raise EmptyDocument(f"DOCX file {file_name} appears to be empty")

    return text
