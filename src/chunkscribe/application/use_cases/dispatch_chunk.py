"""Accept uploaded chunks and put them on the transcription queue."""

import logging

from ...domain.entities.chunk import Chunk
from ...domain.entities.session import Session
from ...domain.enums.status import ChunkStatus, SessionStatus
from ...domain.errors import ChunkNotFoundError, InvalidChunkTransitionError, SessionClosedError
from ...domain.value_objects import storage_keys
from ..dto.chunk_dto import ChunkJob, ChunkUploadRequest, ChunkUploadResult
from ..ports.repositories.entity_store import EntityStore
from ..ports.services.object_storage import ObjectStorage
from ..ports.services.work_queue import WorkQueue

logger = logging.getLogger(__name__)

# Statuses in which a re-upload is re-enqueued rather than acknowledged
_NOT_YET_ENQUEUED = (ChunkStatus.UPLOADED,)


class ChunkDispatcher:
    """Use case: persist an uploaded chunk and enqueue it for transcription.

    Uploads are at-least-once. A chunk that already made it onto the queue
    is acknowledged as a duplicate; one stuck in UPLOADED is enqueued again.
    """

    def __init__(self, entity_store: EntityStore, object_storage: ObjectStorage, work_queue: WorkQueue):
        self._entity_store = entity_store
        self._object_storage = object_storage
        self._work_queue = work_queue

    async def upload(self, request: ChunkUploadRequest, audio: bytes) -> ChunkUploadResult:
        sid, seq = request.session_id, request.seq
        ctx = {"session_id": sid, "seq": seq, "stage": "upload"}

        session = await self._entity_store.get_session(sid)
        if session is not None and session.end_requested:
            raise SessionClosedError(sid, session.status.value)

        existing = await self._entity_store.get_chunk(sid, seq)
        if existing is not None and existing.status not in _NOT_YET_ENQUEUED:
            logger.info(f"Duplicate upload of chunk {seq} for {sid} ({existing.status.value})", extra=ctx)
            await self._apply_identifiers(sid, request)
            return ChunkUploadResult(chunk=existing, duplicate=True)

        ext = storage_keys.audio_extension(request.content_type)
        audio_key = storage_keys.raw_audio_key(sid, seq, request.start_ms, request.end_ms, ext)
        await self._object_storage.put(
            audio_key, audio, request.content_type or "application/octet-stream"
        )
        logger.info(f"📤 Stored chunk {seq} of {sid} at {audio_key} ({len(audio)} bytes)", extra=ctx)

        created = await self._entity_store.create_session_if_absent(
            Session(session_id=sid, status=SessionStatus.TRANSCRIBING, **request.identifiers())
        )
        if not created:
            await self._apply_identifiers(sid, request)

        if existing is None:
            await self._entity_store.create_chunk_if_absent(
                Chunk(
                    session_id=sid,
                    seq=seq,
                    audio_key=audio_key,
                    start_ms=request.start_ms,
                    end_ms=request.end_ms,
                    status=ChunkStatus.UPLOADED,
                    attempt=0,
                )
            )

        job = ChunkJob(
            session_id=sid,
            seq=seq,
            audio_key=audio_key,
            start_ms=request.start_ms,
            end_ms=request.end_ms,
        )
        message_id = await self._work_queue.enqueue(job)

        chunk = await self._entity_store.update_chunk(
            sid, seq, {"status": ChunkStatus.ENQUEUED}, expected_status=_NOT_YET_ENQUEUED
        )
        if chunk is None:
            # The worker or a callback already moved it on
            chunk = await self._entity_store.get_chunk(sid, seq)
        logger.info(f"✅ Chunk {seq} of {sid} enqueued (message_id={message_id})", extra=ctx)
        return ChunkUploadResult(chunk=chunk, message_id=message_id)

    async def retry(self, session_id: str, seq: int) -> Chunk:
        """Re-enqueue a chunk the remote side reported as failed, cancelled or timed out."""
        chunk = await self._entity_store.get_chunk(session_id, seq)
        if chunk is None:
            raise ChunkNotFoundError(session_id, seq)
        if not chunk.status.can_transition_to(ChunkStatus.RETRYING) or not chunk.audio_key:
            raise InvalidChunkTransitionError(
                session_id, seq, chunk.status.value, ChunkStatus.RETRYING.value
            )

        retrying = await self._entity_store.update_chunk(
            session_id,
            seq,
            {
                "status": ChunkStatus.RETRYING,
                "error_code": None,
                "error_message": None,
                "remote_job_id": None,
            },
            expected_status=[chunk.status],
        )
        if retrying is None:
            current = await self._entity_store.get_chunk(session_id, seq)
            raise InvalidChunkTransitionError(
                session_id, seq, current.status.value, ChunkStatus.RETRYING.value
            )

        job = ChunkJob(
            session_id=session_id,
            seq=seq,
            audio_key=chunk.audio_key,
            start_ms=chunk.start_ms,
            end_ms=chunk.end_ms,
            attempt=chunk.attempt,
        )
        message_id = await self._work_queue.enqueue(job)
        updated = await self._entity_store.update_chunk(
            session_id, seq, {"status": ChunkStatus.ENQUEUED}, expected_status=[ChunkStatus.RETRYING]
        )
        logger.info(
            f"🔁 Chunk {seq} of {session_id} re-enqueued (attempt {chunk.attempt}, message_id={message_id})",
            extra={"session_id": session_id, "seq": seq, "stage": "retry"},
        )
        return updated or await self._entity_store.get_chunk(session_id, seq)

    async def _apply_identifiers(self, session_id: str, request: ChunkUploadRequest) -> None:
        identifiers = request.identifiers()
        if identifiers:
            await self._entity_store.update_session(session_id, identifiers)
