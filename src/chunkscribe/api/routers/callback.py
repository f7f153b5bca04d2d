"""
Webhook called by the remote transcriber with job status and output.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from ...application.dto.transcription_dto import TranscriptionCallback
from ...application.use_cases.ingest_callback import CallbackIngestor
from ..deps import get_callback_ingestor
from ..schemas.common import ApiResponse
from ..schemas.pipeline import CallbackOut
from ..utils.responses import ok

logger = logging.getLogger(__name__)

router = APIRouter(tags=["callback"])


async def _read_body(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        logger.warning(f"Transcription callback with non-JSON body on {request.url.path}")
        return {}
    return body if isinstance(body, dict) else {}


@router.post("/transcription-callback", response_model=ApiResponse[CallbackOut])
async def transcription_callback(
    request: Request,
    session_id: str = Query(..., alias="sessionId", min_length=1),
    seq: int = Query(..., ge=0),
    start_ms: Optional[int] = Query(None, alias="startMs", ge=0),
    end_ms: Optional[int] = Query(None, alias="endMs", ge=0),
    key: Optional[str] = Query(None),
    ingestor: CallbackIngestor = Depends(get_callback_ingestor),
):
    """Apply a remote status report. Always acknowledged unless processing fails."""
    body = await _read_body(request)
    error = body.get("error")
    remote_job_id = body.get("id") or body.get("jobId")

    callback = TranscriptionCallback(
        session_id=session_id,
        seq=seq,
        status=str(body.get("status") or request.query_params.get("status") or ""),
        start_ms=start_ms,
        end_ms=end_ms,
        audio_key=key,
        remote_job_id=str(remote_job_id) if remote_job_id else None,
        output=body.get("output"),
        error=str(error) if error else None,
        raw_body=body,
    )
    outcome = await ingestor.execute(callback)

    return ok(
        request,
        data=CallbackOut(
            session_id=outcome.session_id,
            seq=outcome.seq,
            remote_status=outcome.remote_status,
            applied_status=outcome.applied_status.value if outcome.applied_status else None,
            ignored=outcome.ignored,
            duplicate=outcome.duplicate,
            reason=outcome.reason,
            segment_index=outcome.segment_index,
        ),
        message="ignored" if outcome.ignored else "ok",
    )
