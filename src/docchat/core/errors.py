"""
Error Taxonomy and Global Error Handling

This module defines every failure the document chat pipeline can surface,
plus the FastAPI exception handlers that turn them into structured,
human-readable payloads.

Design Goals
------------
- Never leak internal exception details or stack traces to clients
- Every pipeline failure maps to a distinct status code and a suggestion
- Tell callers whether retrying the same request can succeed
- Log full stack traces internally only for unexpected failures
"""

from __future__ import annotations

import logging
from typing import Dict, Any, Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger("docchat.errors")


# ---------------------------------------------------------------------
# Exception Hierarchy
# ---------------------------------------------------------------------

class DocChatError(Exception):
    """
    Base class for all request-scoped pipeline failures.

    Subclasses set class-level defaults; instances may override the
    suggestion for a specific failure.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error: str = "internal_error"
    suggestion: str = "Please try again later."
    retryable: bool = False

    def __init__(self, detail: str, suggestion: Optional[str] = None) -> None:
        super().__init__(detail)
        self.detail = detail
        if suggestion is not None:
            self.suggestion = suggestion

    def to_payload(self) -> Dict[str, Any]:
        return {
            "error": self.error,
            "detail": self.detail,
            "suggestion": self.suggestion,
            "retryable": self.retryable,
        }


class ValidationError(DocChatError):
    """Missing or malformed client input."""

    status_code = status.HTTP_400_BAD_REQUEST
    error = "validation_error"
    suggestion = "Check the request fields and try again."


class IdentityFilterError(ValidationError):
    """A vector operation was attempted without the required user/session filter."""

    error = "identity_filter_required"
    suggestion = "Provide userId (and sessionId where required)."


# Extraction-time failures. Reported per file, never fatal to a batch.

class ExtractionError(DocChatError):
    status_code = 422
    error = "extraction_failed"
    suggestion = "Check that the file is a valid, text-based document."


class UnsupportedFileType(ExtractionError):
    error = "unsupported_file_type"
    suggestion = "Please upload PDF, DOCX, or TXT files."


class NoExtractableText(ExtractionError):
    error = "no_extractable_text"
    suggestion = "Scanned or image-only documents are not supported."


class EmptyDocument(ExtractionError):
    error = "empty_document"
    suggestion = "The document appears to be empty."


# Upstream services

class EmbeddingServiceError(DocChatError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error = "embedding_service_error"
    suggestion = "Check the Hugging Face API key and try again in a moment."
    retryable = True


class VectorStoreError(DocChatError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error = "vector_store_error"
    suggestion = "Please check the vector database configuration."
    retryable = True


class ChatLogError(DocChatError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error = "chat_log_error"
    suggestion = "Please check the database configuration."
    retryable = True


class CompletionServiceError(DocChatError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error = "completion_service_error"
    suggestion = "Please try again with a different question."
    retryable = True


class CompletionAuthError(CompletionServiceError):
    status_code = status.HTTP_502_BAD_GATEWAY
    error = "completion_auth_failed"
    suggestion = "Please check the GROQ_API_KEY configuration."
    retryable = False


class CompletionRateLimited(CompletionServiceError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    error = "completion_rate_limited"
    suggestion = "Please wait a moment and try again."


class CompletionTimeout(CompletionServiceError):
    status_code = status.HTTP_504_GATEWAY_TIMEOUT
    error = "completion_timeout"
    suggestion = "The model took too long to respond. Please try again."


class CompletionUnavailable(CompletionServiceError):
    error = "completion_unavailable"


# ---------------------------------------------------------------------
# Public Exception Handlers
# ---------------------------------------------------------------------

async def docchat_exception_handler(
    request: Request,
    exc: DocChatError,
) -> JSONResponse:
    """
    Convert a known pipeline failure into its structured JSON payload.

    These are expected, request-scoped failures, so they are logged at
    warning level without a traceback.
    """
    logger.warning(
        "Request %s %s failed: %s (%s)",
        request.method,
        request.url.path,
        exc.error,
        exc.detail,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_payload(),
    )


async def request_validation_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    """
    Report schema validation failures as client faults (400).
    """
    errors = exc.errors()
    fields = [".".join(str(p) for p in err.get("loc", ())) for err in errors]
    payload = ValidationError(
        f"Invalid request: {', '.join(fields) or 'malformed body'}"
    ).to_payload()
    payload["errors"] = [
        {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
        for err in errors
    ]
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=payload)


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """
    Catch-all handler for uncaught exceptions.

    Behavior
    --------
    - Logs the full exception stack trace for internal diagnostics.
    - Returns a generic 500 error to the client with no internal details.

    Parameters
    ----------
    request : Request
        The incoming HTTP request that triggered the exception.

    exc : Exception
        The uncaught exception instance.

    Returns
    -------
    JSONResponse
        A JSON 500 response with a minimal error payload.
    """

    # Log full traceback internally (never returned to client)
    logger.exception(
        "Unhandled exception during request: %s %s",
        request.method,
        request.url.path,
        exc_info=exc,
    )

    payload: Dict[str, Any] = {
        "error": "internal_server_error",
        "detail": "Internal server error",
        "suggestion": "Please try again later.",
        "retryable": False,
    }

    return JSONResponse(
        status_code=500,
        content=payload,
    )
