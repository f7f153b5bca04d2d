"""
Chunk upload endpoint used by the recording client.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from ...application.dto.chunk_dto import ChunkUploadRequest
from ...application.use_cases.dispatch_chunk import ChunkDispatcher
from ..deps import get_chunk_dispatcher
from ..errors import InvalidUploadError
from ..schemas.common import ApiResponse
from ..schemas.pipeline import UploadChunkOut
from ..utils.responses import ok

logger = logging.getLogger(__name__)

router = APIRouter(tags=["upload"])


@router.post("/upload-chunk", response_model=ApiResponse[UploadChunkOut])
async def upload_chunk(
    request: Request,
    file: UploadFile = File(...),
    session_id: str = Form(..., alias="sessionId"),
    seq: int = Form(...),
    start_ms: int = Form(..., alias="startMs"),
    end_ms: int = Form(..., alias="endMs"),
    therapist_id: Optional[int] = Form(None, alias="therapistId"),
    patient_id: Optional[int] = Form(None, alias="patientId"),
    organization_id: Optional[int] = Form(None, alias="organizationId"),
    appointment_id: Optional[int] = Form(None, alias="appointmentId"),
    dispatcher: ChunkDispatcher = Depends(get_chunk_dispatcher),
):
    """Store one recorded chunk and queue it for transcription."""
    audio = await file.read()
    if not audio:
        raise InvalidUploadError("file is required and cannot be empty", session_id, seq)

    try:
        upload_request = ChunkUploadRequest(
            session_id=session_id,
            seq=seq,
            start_ms=start_ms,
            end_ms=end_ms,
            content_type=file.content_type,
            therapist_id=therapist_id,
            patient_id=patient_id,
            organization_id=organization_id,
            appointment_id=appointment_id,
        )
    except ValueError as e:
        raise InvalidUploadError(str(e), session_id, seq) from e

    result = await dispatcher.upload(upload_request, audio)

    return ok(
        request,
        data=UploadChunkOut(
            session_id=result.chunk.session_id,
            seq=result.chunk.seq,
            key=result.chunk.audio_key,
            status=result.chunk.status.value,
            duplicate=result.duplicate,
            message_id=result.message_id,
        ),
        message="duplicate" if result.duplicate else "enqueued",
    )
