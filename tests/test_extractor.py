import io

import pytest
from docx import Document

from docchat.core.errors import (
    EmptyDocument,
    ExtractionError,
    NoExtractableText,
    UnsupportedFileType,
)
from docchat.ingestion.extractor import (
    clean_extracted_text,
    extract_pdf_literals,
    extract_text,
    resolve_file_kind,
)
from docchat.ingestion.models import FileKind


def _docx_bytes(*paragraphs: str) -> bytes:
    document = Document()
    for text in paragraphs:
        document.add_paragraph(text)
    buffer = io.BytesIO()
    document.save(buffer)
    return buffer.getvalue()


# ---------------------------------------------------------------------
# File kind resolution
# ---------------------------------------------------------------------

@pytest.mark.parametrize(
    "mime, name, expected",
    [
        ("application/pdf", "report.pdf", FileKind.PDF),
        ("application/octet-stream", "report.PDF", FileKind.PDF),
        (
            "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
            "memo.docx",
            FileKind.DOCX,
        ),
        ("application/msword", "legacy.doc", FileKind.DOCX),
        ("text/plain", "notes.txt", FileKind.TEXT),
        ("text/markdown", "README.md", FileKind.TEXT),
        (None, "notes.md", FileKind.TEXT),
    ],
)
def test_resolve_file_kind(mime, name, expected):
    assert resolve_file_kind(mime, name) is expected


def test_resolve_file_kind_rejects_images():
    with pytest.raises(UnsupportedFileType):
        resolve_file_kind("image/png", "scan.png")


def test_unsupported_is_an_extraction_error():
    with pytest.raises(ExtractionError):
        extract_text(b"\x89PNG", "image/png", "scan.png")


def test_extraction_errors_are_unprocessable():
    for error in (ExtractionError, UnsupportedFileType, NoExtractableText, EmptyDocument):
        assert error("bad file").status_code == 422


# ---------------------------------------------------------------------
# Cleaning
# ---------------------------------------------------------------------

def test_clean_collapses_whitespace_and_blank_lines():
    raw = "  Hello\t\t  world  \r\n\r\n\r\n\r\n  Second   paragraph  "
    assert clean_extracted_text(raw) == "Hello world\n\nSecond paragraph"


def test_clean_replaces_non_ascii_with_space():
    assert clean_extracted_text("café ok") == "caf ok"


def test_clean_empty():
    assert clean_extracted_text("") == ""


# ---------------------------------------------------------------------
# Plain text
# ---------------------------------------------------------------------

def test_extract_plain_text():
    result = extract_text(b"First line.\n\n\n\nSecond line.", "text/plain", "a.txt")
    assert result.text == "First line.\n\nSecond line."
    assert result.page_count == 0
    assert result.used_fallback is False


def test_whitespace_only_text_has_nothing_to_extract():
    with pytest.raises(NoExtractableText):
        extract_text(b"   \n\t  \n", "text/plain", "blank.txt")


def test_undecodable_bytes_do_not_raise():
    result = extract_text(b"valid text \xff\xfe more text", "text/plain", "mixed.txt")
    assert "valid text" in result.text
    assert "more text" in result.text


# ---------------------------------------------------------------------
# PDF
# ---------------------------------------------------------------------

def test_pdf_literal_scan_keeps_readable_strings():
    data = b"%PDF-1.4 (Hello world text) (x) (bad\\escape) (caf\xe9 menu) (Second part.)"
    assert extract_pdf_literals(data) == "Hello world text Second part."


def test_unreadable_pdf_falls_back_to_literal_scan():
    data = b"%PDF-1.4 not really a pdf (Quarterly revenue grew strongly) trailer"
    result = extract_text(data, "application/pdf", "broken.pdf")
    assert result.used_fallback is True
    assert result.text == "Quarterly revenue grew strongly"


def test_pdf_with_no_text_at_all():
    with pytest.raises(NoExtractableText):
        extract_text(b"%PDF-1.4 \x00\x01\x02", "application/pdf", "image-only.pdf")


# ---------------------------------------------------------------------
# DOCX
# ---------------------------------------------------------------------

def test_extract_docx_paragraphs():
    data = _docx_bytes("Refund policy.", "Refunds are issued within 30 days.")
    result = extract_text(data, None, "policy.docx")
    assert "Refund policy." in result.text
    assert "Refunds are issued within 30 days." in result.text


def test_empty_docx():
    with pytest.raises(EmptyDocument):
        extract_text(_docx_bytes(), None, "empty.docx")


def test_corrupt_docx_reports_extraction_error():
    with pytest.raises(ExtractionError) as exc_info:
        extract_text(b"definitely not a zip", None, "legacy.doc")
    assert ".docx" in exc_info.value.suggestion
