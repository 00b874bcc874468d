"""
Upload Routes

`POST /upload` accepts a multipart batch of documents (`files`) for one
user session and stores their embedded chunks.

Accepted: PDF, DOC/DOCX, TXT/MD up to the configured size limit. Each
file gets its own result; a bad file never fails the batch.
"""

from typing import Annotated, List

from fastapi import APIRouter, Depends, File, Form, UploadFile, status

from .dependencies import get_upload_service
from .models import MAX_ID_LENGTH, FileResultModel, UploadResponse, UploadSummaryModel
from ..ingestion.pipeline import IncomingFile, UploadService

router = APIRouter(prefix="/upload", tags=["upload"])


@router.post(
    "",
    response_model=UploadResponse,
    summary="Upload documents for retrieval",
    status_code=status.HTTP_200_OK,
)
async def upload_documents(
    files: Annotated[List[UploadFile], File()],
    user_id: Annotated[str, Form(alias="userId", min_length=1, max_length=MAX_ID_LENGTH)],
    session_id: Annotated[str, Form(alias="sessionId", min_length=1, max_length=MAX_ID_LENGTH)],
    service: Annotated[UploadService, Depends(get_upload_service)],
) -> UploadResponse:
    incoming = []
    for upload in files:
        data = await upload.read()
        incoming.append(
            IncomingFile(
                file_name=upload.filename or "upload",
                mime_type=upload.content_type,
                data=data,
            )
        )

    report = await service.process_batch(incoming, user_id=user_id, session_id=session_id)

    return UploadResponse(
        results=[
            FileResultModel(
                file_name=r.file_name,
                status=r.status,
                chunks=r.chunks,
                message=r.message,
            )
            for r in report.results
        ],
        summary=UploadSummaryModel(
            total_files=report.summary.total_files,
            total_chunks=report.summary.total_chunks,
            embedding_model=report.summary.embedding_model,
            embedding_dimension=report.summary.embedding_dimension,
        ),
    )
