"""
Read-side session endpoints and chunk retry.
"""

from typing import List

from fastapi import APIRouter, Depends, Path, Request

from ...application.use_cases.dispatch_chunk import ChunkDispatcher
from ...application.use_cases.session_queries import SessionQueries
from ..deps import get_chunk_dispatcher, get_session_queries
from ..schemas.common import ApiResponse
from ..schemas.pipeline import ChunkOut, ProgressOut, SegmentOut, SessionOut
from ..utils.responses import ok

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.get("/{session_id}", response_model=ApiResponse[SessionOut])
async def get_session(request: Request, session_id: str, queries: SessionQueries = Depends(get_session_queries)):
    session = await queries.get_session(session_id)
    return ok(request, data=SessionOut.from_entity(session))


@router.get("/{session_id}/progress", response_model=ApiResponse[ProgressOut])
async def get_progress(request: Request, session_id: str, queries: SessionQueries = Depends(get_session_queries)):
    """Chunk completion rollup for a session."""
    progress = await queries.progress(session_id)
    return ok(request, data=ProgressOut.from_progress(progress))


@router.get("/{session_id}/chunks", response_model=ApiResponse[List[ChunkOut]])
async def list_chunks(request: Request, session_id: str, queries: SessionQueries = Depends(get_session_queries)):
    chunks = await queries.list_chunks(session_id)
    return ok(request, data=[ChunkOut.from_entity(c) for c in chunks])


@router.get("/{session_id}/segments", response_model=ApiResponse[List[SegmentOut]])
async def list_segments(request: Request, session_id: str, queries: SessionQueries = Depends(get_session_queries)):
    segments = await queries.list_segments(session_id)
    return ok(request, data=[SegmentOut.from_entity(s) for s in segments])


@router.post("/{session_id}/chunks/{seq}/retry", response_model=ApiResponse[ChunkOut])
async def retry_chunk(
    request: Request,
    session_id: str,
    seq: int = Path(..., ge=0),
    dispatcher: ChunkDispatcher = Depends(get_chunk_dispatcher),
):
    """Re-enqueue a failed, cancelled or timed-out chunk."""
    chunk = await dispatcher.retry(session_id, seq)
    return ok(request, data=ChunkOut.from_entity(chunk), message="re-enqueued")
