"""Finalize a session: flush, consolidate summaries, invoke the finalizer."""

import asyncio
import json
import logging
from datetime import datetime

from ...core.exceptions import SummarizerError
from ...domain.enums.status import SessionStatus
from ...domain.errors import SessionNotFoundError
from ...domain.value_objects import storage_keys
from ..dto.session_dto import FinalizeRequest, FinalizeResult
from ..ports.repositories.entity_store import EntityStore
from ..ports.services.object_storage import ObjectStorage
from ..ports.services.summarizer_service import SummarizerService
from .session_orchestrator import SessionOrchestrator

logger = logging.getLogger(__name__)


class FinalizeSession:
    """Use case for ending a recording session.

    Not self-serializing: two concurrent calls for one session both invoke
    the external finalizer.
    """

    def __init__(
        self,
        entity_store: EntityStore,
        object_storage: ObjectStorage,
        orchestrator: SessionOrchestrator,
        summarizer_service: SummarizerService,
        timeout_seconds: float = 120.0,
    ):
        self._entity_store = entity_store
        self._object_storage = object_storage
        self._orchestrator = orchestrator
        self._summarizer_service = summarizer_service
        self._timeout_seconds = timeout_seconds

    async def execute(self, request: FinalizeRequest) -> FinalizeResult:
        sid = request.session_id
        ctx = {"session_id": sid, "stage": "finalize"}

        if await self._entity_store.get_session(sid) is None:
            raise SessionNotFoundError(sid)

        await self._entity_store.update_session(
            sid,
            {"status": SessionStatus.FINALIZING, "end_requested": True, **request.identifiers()},
        )
        logger.info(f"🏁 Finalizing session {sid}", extra=ctx)

        # Same cut-and-summarize primitive as threshold cuts
        cut = await self._orchestrator.flush_rolling_buffer(sid)

        # Segments still pending or failed are left out, not awaited
        segments = await self._entity_store.list_segments(sid)
        summaries = [
            {
                "segment_index": segment.segment_index,
                "container": self._object_storage.container,
                "key": segment.summary_key,
            }
            for segment in segments
            if segment.summary_key
        ]
        consolidated = {
            "session_id": sid,
            "generated_at": datetime.utcnow().isoformat(),
            "summaries": summaries,
        }
        consolidated_key = storage_keys.final_summary_key(sid)
        await self._object_storage.put(
            consolidated_key,
            json.dumps(consolidated, ensure_ascii=False, indent=2).encode("utf-8"),
            storage_keys.JSON_CONTENT_TYPE,
        )

        session = await self._entity_store.get_session(sid)
        try:
            reply = await asyncio.wait_for(
                self._summarizer_service.finalize(session, consolidated_key, self._object_storage.container),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            raise SummarizerError(
                f"finalizer timed out after {self._timeout_seconds}s", {"session_id": sid}
            ) from e

        await self._entity_store.update_session(sid, {"status": SessionStatus.COMPLETE})
        logger.info(
            f"✅ Session {sid} complete ({len(summaries)} of {len(segments)} segment summaries)",
            extra=ctx,
        )
        return FinalizeResult(
            session_id=sid,
            consolidated_key=consolidated_key,
            summary_count=len(summaries),
            final_segment_index=cut.segment_index if cut else None,
            finalizer_result=_parse_reply(reply),
        )


def _parse_reply(reply: str) -> dict:
    """The finalizer reply is opaque; non-object replies are wrapped."""
    try:
        parsed = json.loads(reply) if reply else {}
    except (TypeError, ValueError):
        return {"raw": reply}
    return parsed if isinstance(parsed, dict) else {"result": parsed}
