"""
API Models

Request and response schemas for every HTTP endpoint. Field names are
snake_case in Python and camelCase on the wire (`userId`, `sessionId`,
`isDeepThinking`, ...). Responses are serialised by alias.
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# Matches the String(128) identity columns.
MAX_ID_LENGTH = 128


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------

class ChatRequest(CamelModel):
    """
    One user message. `message` may not be blank; that is checked by the
    chat service so it is reported as a 400 with a suggestion.
    """
    message: str
    user_id: str = Field(..., min_length=1, max_length=MAX_ID_LENGTH)
    session_id: str = Field(..., min_length=1, max_length=MAX_ID_LENGTH)
    is_deep_thinking: bool = False
    document_scope: Optional[Literal["session", "user"]] = None


class ChatDebugInfo(CamelModel):
    context_used: bool
    context_source: str
    matches: int = Field(..., ge=0)
    timestamp: datetime


class ChatResponse(CamelModel):
    response: str
    type: Literal["memory", "document", "general", "ai"]
    sources: List[str] = Field(default_factory=list)
    debug: ChatDebugInfo


# ---------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------

class FileResultModel(CamelModel):
    file_name: str
    status: Literal["success", "error"]
    chunks: int = Field(default=0, ge=0)
    message: str = ""


class UploadSummaryModel(CamelModel):
    total_files: int
    total_chunks: int
    embedding_model: str
    embedding_dimension: int


class UploadResponse(CamelModel):
    results: List[FileResultModel]
    summary: UploadSummaryModel


# ---------------------------------------------------------------------
# History & Deletion
# ---------------------------------------------------------------------

class MessageModel(CamelModel):
    role: Literal["user", "assistant"]
    message: str
    timestamp: datetime


class SessionSummaryModel(CamelModel):
    session_id: str
    created_at: datetime
    updated_at: datetime
    total_messages: int
    messages_preview: List[MessageModel] = Field(default_factory=list)


class HistoryResponse(CamelModel):
    user_id: str
    sessions: List[SessionSummaryModel]


class SessionHistoryResponse(CamelModel):
    user_id: str
    session_id: str
    created_at: datetime
    updated_at: datetime
    messages: List[MessageModel]


class DeleteRequest(CamelModel):
    """Omit `sessionId` to delete everything the user owns."""
    user_id: str = Field(..., min_length=1, max_length=MAX_ID_LENGTH)
    session_id: Optional[str] = Field(default=None, max_length=MAX_ID_LENGTH)


class DeleteResponse(CamelModel):
    success: bool
    message: str
    deleted: Dict[str, int] = Field(default_factory=dict)


# ---------------------------------------------------------------------
# Health & Stats
# ---------------------------------------------------------------------

class ServiceStatus(CamelModel):
    status: Literal["ok", "unavailable", "missing_api_key"]
    detail: Optional[str] = None


class ServicesHealthResponse(CamelModel):
    status: Literal["healthy", "degraded"]
    services: Dict[str, ServiceStatus]
    timestamp: datetime


class StatsResponse(CamelModel):
    user_id: str
    document_vectors: int
    chat_message_vectors: int
    sessions: int
    embedding_model: str
    embedding_dimension: int
