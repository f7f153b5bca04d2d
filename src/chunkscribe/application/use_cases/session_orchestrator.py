"""Session orchestration: chunk status, merge, segmentation and segment dispatch."""

import asyncio
import logging
import random
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Tuple

from ...core.utils.timing import timing
from ...domain.entities.chunk import Chunk
from ...domain.entities.segment import Segment
from ...domain.entities.session import Session
from ...domain.enums.status import ChunkStatus, SessionStatus
from ...domain.errors import ConcurrencyConflictError, SessionNotFoundError
from ...domain.value_objects import storage_keys
from ..dto.transcription_dto import TranscriptionResult
from ..ports.repositories.entity_store import EntityStore
from ..ports.services.object_storage import ObjectStorage
from ..utils.merge_engine import DEFAULT_EPSILON_SECONDS, merge_chunk
from ..utils.segmentation import DEFAULT_TOKEN_THRESHOLD, SegmentCut, decide_segmentation
from .summarize_segment import SegmentSummarizer

logger = logging.getLogger(__name__)

_MERGED = "merged"
_ALREADY_MERGED = "already_merged"
_FLUSHED = "flushed"
_SKIPPED = "skipped"


@dataclass
class ChunkSuccessOutcome:
    session_id: str
    seq: int
    duplicate: bool = False
    merged: bool = False
    transcript_key: Optional[str] = None
    segment_index: Optional[int] = None


class SessionOrchestrator:
    """Sole writer of a session's rolling state and of segment creation.

    Concurrent completions for one session are serialized by an optimistic
    compare-and-swap on the session version: read, compute merge and
    segmentation, commit if nobody else committed in between, else redo.
    """

    def __init__(
        self,
        entity_store: EntityStore,
        object_storage: ObjectStorage,
        segment_summarizer: SegmentSummarizer,
        token_threshold: int = DEFAULT_TOKEN_THRESHOLD,
        watermark_epsilon: float = DEFAULT_EPSILON_SECONDS,
        max_commit_retries: int = 8,
        commit_backoff_seconds: float = 0.02,
    ):
        self._entity_store = entity_store
        self._object_storage = object_storage
        self._segment_summarizer = segment_summarizer
        self._token_threshold = token_threshold
        self._watermark_epsilon = watermark_epsilon
        self._max_commit_retries = max_commit_retries
        self._commit_backoff_seconds = commit_backoff_seconds

    async def set_chunk_status(
        self,
        session_id: str,
        seq: int,
        status: ChunkStatus,
        expected_status: Optional[Iterable[ChunkStatus]] = None,
        **extra: Any,
    ) -> Optional[Chunk]:
        """Apply a chunk status plus metadata.

        Legality of the transition is the caller's concern. Storage errors,
        including an unknown chunk, propagate.
        """
        changes = {"status": ChunkStatus(status), **extra}
        chunk = await self._entity_store.update_chunk(
            session_id, seq, changes, expected_status=expected_status
        )
        if chunk is not None:
            logger.info(
                f"🔄 Chunk {seq} of {session_id} -> {chunk.status.value}",
                extra={"session_id": session_id, "seq": seq, "stage": "chunk_status"},
            )
        return chunk

    async def handle_chunk_success(
        self,
        session_id: str,
        seq: int,
        result: TranscriptionResult,
        chunk_start_offset_ms: Optional[int] = None,
    ) -> ChunkSuccessOutcome:
        """Record a transcribed chunk and fold it into the rolling transcript.

        A chunk whose transcript is recorded and already folded (or can no
        longer be folded because the session is finalizing) is a duplicate
        delivery and returns without side effects. A recorded chunk that
        never made it into the transcript is merged again. Any failure after
        that check propagates.
        """
        ctx = {"session_id": session_id, "seq": seq, "stage": "chunk_success"}
        chunk = await self._entity_store.get_chunk(session_id, seq)
        recorded = chunk is not None and chunk.has_recorded_transcript
        if recorded and self._already_folded(await self._entity_store.get_session(session_id), seq):
            logger.info(f"Duplicate success for chunk {seq} of {session_id}, skipping", extra=ctx)
            return ChunkSuccessOutcome(
                session_id, seq, duplicate=True, transcript_key=chunk.transcript_key
            )

        if chunk_start_offset_ms is not None:
            offset_ms = chunk_start_offset_ms
        else:
            offset_ms = chunk.start_ms if chunk is not None else 0

        if recorded:
            transcript_key = chunk.transcript_key
            logger.info(f"Chunk {seq} of {session_id} recorded but not merged, merging again", extra=ctx)
        else:
            transcript_key = await self._record_transcript(session_id, seq, result, chunk, offset_ms)

        await self._entity_store.create_session_if_absent(
            Session(session_id=session_id, status=SessionStatus.TRANSCRIBING)
        )

        with timing("merge_and_segment", logger, session_id=session_id, seq=seq):
            outcome, cut = await self._commit_with_retry(session_id, seq=seq, result=result, offset_ms=offset_ms)

        if outcome == _ALREADY_MERGED:
            logger.info(f"Chunk {seq} of {session_id} merged by a concurrent delivery", extra=ctx)
            return ChunkSuccessOutcome(session_id, seq, duplicate=True, transcript_key=transcript_key)

        if cut is not None:
            await self._dispatch_segment(session_id, cut)

        return ChunkSuccessOutcome(
            session_id,
            seq,
            merged=outcome == _MERGED,
            transcript_key=transcript_key,
            segment_index=cut.segment_index if cut else None,
        )

    async def flush_rolling_buffer(self, session_id: str) -> Optional[SegmentCut]:
        """Cut whatever remains in the rolling buffer as a final segment.

        Goes through the same commit and dispatch path as threshold cuts.
        """
        with timing("flush_rolling_buffer", logger, session_id=session_id):
            _, cut = await self._commit_with_retry(session_id, force=True)
        if cut is not None:
            await self._dispatch_segment(session_id, cut)
        return cut

    @staticmethod
    def _already_folded(session: Optional[Session], seq: int) -> bool:
        if session is None:
            return False
        return seq in session.merged_seqs or not session.accepts_chunks

    async def _record_transcript(
        self,
        session_id: str,
        seq: int,
        result: TranscriptionResult,
        chunk: Optional[Chunk],
        offset_ms: int,
    ) -> str:
        transcript_key = storage_keys.transcript_key(session_id, seq)
        await self._object_storage.put(
            transcript_key, result.to_json_bytes(), storage_keys.JSON_CONTENT_TYPE
        )

        if chunk is None:
            logger.warning(
                f"Success for unknown chunk {seq} of {session_id}, recording it",
                extra={"session_id": session_id, "seq": seq, "stage": "chunk_success"},
            )
            await self._entity_store.create_chunk_if_absent(
                Chunk(session_id=session_id, seq=seq, start_ms=offset_ms, end_ms=offset_ms)
            )
        await self._entity_store.update_chunk(
            session_id,
            seq,
            {
                "status": ChunkStatus.SUCCEEDED,
                "transcript_key": transcript_key,
                "language": result.language,
                "error_code": None,
                "error_message": None,
            },
        )
        return transcript_key

    async def _commit_with_retry(
        self,
        session_id: str,
        seq: Optional[int] = None,
        result: Optional[TranscriptionResult] = None,
        offset_ms: int = 0,
        force: bool = False,
    ) -> Tuple[str, Optional[SegmentCut]]:
        for attempt in range(1, self._max_commit_retries + 1):
            session = await self._entity_store.get_session(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)

            changes = {}
            new_text = ""
            if result is not None:
                if not session.accepts_chunks:
                    logger.warning(
                        f"Chunk {seq} of {session_id} completed after finalize; "
                        f"transcript stored, merge skipped",
                        extra={"session_id": session_id, "seq": seq, "stage": "merge"},
                    )
                    return _SKIPPED, None
                if seq in session.merged_seqs:
                    return _ALREADY_MERGED, None
                merge = merge_chunk(
                    result, offset_ms, session.last_kept_end_seconds, self._watermark_epsilon
                )
                new_text = merge.text
                changes["last_kept_end_seconds"] = merge.watermark
                changes["merged_seqs"] = session.merged_seqs + [seq]
                logger.debug(
                    f"Merged chunk {seq}: kept={merge.kept_words} dropped={merge.dropped_words} "
                    f"watermark={session.last_kept_end_seconds:.3f}->{merge.watermark:.3f}",
                    extra={"session_id": session_id, "seq": seq, "stage": "merge"},
                )

            decision = decide_segmentation(
                session.rolling_text,
                session.rolling_token_count,
                session.next_segment_index,
                new_text,
                threshold=self._token_threshold,
                force=force,
            )
            if force and decision.cut is None:
                return _SKIPPED, None

            changes.update(
                rolling_text=decision.rolling_text,
                rolling_token_count=decision.rolling_token_count,
                next_segment_index=decision.next_segment_index,
            )
            if session.status == SessionStatus.RECORDING:
                changes["status"] = SessionStatus.TRANSCRIBING

            new_segment = None
            if decision.cut is not None:
                new_segment = Segment(
                    session_id=session_id,
                    segment_index=decision.cut.segment_index,
                    token_count=decision.cut.token_count,
                )

            committed = await self._entity_store.commit_rolling_state(
                session_id, session.version, changes, new_segment
            )
            if committed:
                return (_MERGED if result is not None else _FLUSHED), decision.cut

            logger.info(
                f"Rolling state of {session_id} changed concurrently, retrying "
                f"(attempt {attempt}/{self._max_commit_retries})",
                extra={"session_id": session_id, "seq": seq, "stage": "commit"},
            )
            await asyncio.sleep(random.uniform(0, self._commit_backoff_seconds * attempt))

        raise ConcurrencyConflictError(session_id, self._max_commit_retries)

    async def _dispatch_segment(self, session_id: str, cut: SegmentCut) -> None:
        ctx = {"session_id": session_id, "segment_index": cut.segment_index, "stage": "segment_cut"}
        logger.info(
            f"✂️ Cut segment {cut.segment_index} of {session_id} ({cut.token_count} tokens)",
            extra=ctx,
        )
        input_key = storage_keys.segment_input_key(session_id, cut.segment_index)
        await self._object_storage.put(
            input_key, cut.text.encode("utf-8"), storage_keys.TEXT_CONTENT_TYPE
        )
        await self._segment_summarizer.execute(session_id, cut.segment_index)
