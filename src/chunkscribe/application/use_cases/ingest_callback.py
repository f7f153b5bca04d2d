"""Ingest status notifications from the remote transcriber."""

import logging
from dataclasses import dataclass
from typing import Optional

from ...domain.enums.status import ChunkStatus
from ...domain.errors import MalformedTranscriptionResultError
from ..dto.transcription_dto import TranscriptionCallback, TranscriptionResult
from ..ports.repositories.entity_store import EntityStore
from .session_orchestrator import SessionOrchestrator

logger = logging.getLogger(__name__)

REMOTE_STATUS_MAP = {
    "IN_QUEUE": ChunkStatus.QUEUED_REMOTE,
    "IN_PROGRESS": ChunkStatus.IN_PROGRESS,
    "FAILED": ChunkStatus.FAILED,
    "CANCELLED": ChunkStatus.CANCELLED,
    "TIMED_OUT": ChunkStatus.TIMED_OUT,
    "SUCCEEDED": ChunkStatus.SUCCEEDED,
    "COMPLETED": ChunkStatus.SUCCEEDED,
}


@dataclass
class CallbackOutcome:
    session_id: str
    seq: int
    remote_status: str
    applied_status: Optional[ChunkStatus] = None
    ignored: bool = False
    duplicate: bool = False
    reason: Optional[str] = None
    segment_index: Optional[int] = None


class CallbackIngestor:
    """Use case: map a remote status onto the chunk state machine.

    Unknown statuses, stale non-terminal reports and repeats are acknowledged
    without touching any record. Success payloads go to the orchestrator.
    """

    def __init__(self, entity_store: EntityStore, orchestrator: SessionOrchestrator):
        self._entity_store = entity_store
        self._orchestrator = orchestrator

    async def execute(self, callback: TranscriptionCallback) -> CallbackOutcome:
        sid, seq = callback.session_id, callback.seq
        remote_status = callback.normalized_status
        ctx = {"session_id": sid, "seq": seq, "stage": "callback"}

        target = REMOTE_STATUS_MAP.get(remote_status)
        if target is None:
            logger.info(f"Ignoring unknown remote status '{callback.status}' for chunk {seq} of {sid}", extra=ctx)
            return CallbackOutcome(sid, seq, remote_status, ignored=True, reason="unknown_status")

        if target == ChunkStatus.SUCCEEDED:
            return await self._handle_success(callback, remote_status)

        chunk = await self._entity_store.get_chunk(sid, seq)
        if chunk is None:
            logger.warning(f"Callback {remote_status} for unknown chunk {seq} of {sid}", extra=ctx)
            return CallbackOutcome(sid, seq, remote_status, ignored=True, reason="unknown_chunk")
        if chunk.status == target:
            return CallbackOutcome(sid, seq, remote_status, applied_status=target, duplicate=True)
        if not chunk.status.can_transition_to(target):
            logger.info(
                f"Ignoring stale {remote_status} for chunk {seq} of {sid} (already {chunk.status.value})",
                extra=ctx,
            )
            return CallbackOutcome(sid, seq, remote_status, ignored=True, reason="stale_status")

        extra = {}
        if target.is_failure:
            extra["error_code"] = remote_status
            extra["error_message"] = callback.error or f"Remote transcription {remote_status.lower()}"
        if callback.remote_job_id and not chunk.remote_job_id:
            extra["remote_job_id"] = callback.remote_job_id

        updated = await self._orchestrator.set_chunk_status(
            sid, seq, target, expected_status=[chunk.status], **extra
        )
        if updated is None:
            return CallbackOutcome(sid, seq, remote_status, ignored=True, reason="concurrent_update")
        return CallbackOutcome(sid, seq, remote_status, applied_status=target)

    async def _handle_success(self, callback: TranscriptionCallback, remote_status: str) -> CallbackOutcome:
        sid, seq = callback.session_id, callback.seq
        try:
            result = TranscriptionResult.from_payload(callback.result_payload)
        except MalformedTranscriptionResultError as e:
            return await self._reject_malformed(callback, remote_status, e)

        outcome = await self._orchestrator.handle_chunk_success(sid, seq, result, callback.start_ms)
        return CallbackOutcome(
            sid,
            seq,
            remote_status,
            applied_status=ChunkStatus.SUCCEEDED,
            duplicate=outcome.duplicate,
            segment_index=outcome.segment_index,
        )

    async def _reject_malformed(
        self, callback: TranscriptionCallback, remote_status: str, error: MalformedTranscriptionResultError
    ) -> CallbackOutcome:
        sid, seq = callback.session_id, callback.seq
        ctx = {"session_id": sid, "seq": seq, "stage": "callback"}
        logger.error(f"❌ {error.message} for chunk {seq} of {sid}", extra=ctx)

        chunk = await self._entity_store.get_chunk(sid, seq)
        if chunk is None:
            return CallbackOutcome(sid, seq, remote_status, ignored=True, reason="unknown_chunk")
        if chunk.has_recorded_transcript:
            return CallbackOutcome(sid, seq, remote_status, applied_status=chunk.status, duplicate=True)
        if not chunk.status.can_transition_to(ChunkStatus.FAILED):
            return CallbackOutcome(sid, seq, remote_status, ignored=True, reason="stale_status")

        await self._orchestrator.set_chunk_status(
            sid,
            seq,
            ChunkStatus.FAILED,
            expected_status=[chunk.status],
            error_code=error.error_code,
            error_message=error.message,
        )
        return CallbackOutcome(
            sid, seq, remote_status, applied_status=ChunkStatus.FAILED, reason="malformed_result"
        )
