"""Summarize one cut segment through the external summarizer function."""

import asyncio
import json
import logging

from ...core.exceptions import ExternalServiceError, SummarizerError
from ...domain.entities.segment import Segment
from ...domain.enums.status import SegmentStatus
from ...domain.errors import SessionNotFoundError
from ...domain.value_objects import storage_keys
from ..ports.repositories.entity_store import EntityStore
from ..ports.services.object_storage import ObjectStorage
from ..ports.services.summarizer_service import SummarizerService

logger = logging.getLogger(__name__)


class SegmentSummarizer:
    """Use case: read a segment's input text, summarize it, store the summary.

    Safe to run more than once for the same segment: the summary object is
    overwritten under a fixed key.
    """

    def __init__(
        self,
        entity_store: EntityStore,
        object_storage: ObjectStorage,
        summarizer_service: SummarizerService,
        timeout_seconds: float = 120.0,
    ):
        self._entity_store = entity_store
        self._object_storage = object_storage
        self._summarizer_service = summarizer_service
        self._timeout_seconds = timeout_seconds

    async def execute(self, session_id: str, segment_index: int) -> Segment:
        ctx = {"session_id": session_id, "segment_index": segment_index, "stage": "summarize"}

        await self._entity_store.update_segment(
            session_id,
            segment_index,
            {"status": SegmentStatus.SUMMARIZING, "error_code": None, "error_message": None},
        )

        input_key = storage_keys.segment_input_key(session_id, segment_index)
        text = (await self._object_storage.get(input_key)).decode("utf-8")

        session = await self._entity_store.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)

        try:
            reply = await asyncio.wait_for(
                self._summarizer_service.summarize_segment(session, segment_index, text),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            await self._mark_failed(session_id, segment_index, "SUMMARIZER_TIMEOUT", "Summarizer call timed out")
            raise SummarizerError(
                f"segment summary timed out after {self._timeout_seconds}s",
                {"session_id": session_id, "segment_index": segment_index},
            ) from e
        except ExternalServiceError as e:
            await self._mark_failed(session_id, segment_index, e.error_code, e.message)
            raise

        try:
            json.loads(reply)
        except (TypeError, ValueError):
            logger.warning(
                f"Summarizer returned non-JSON for segment {segment_index} of {session_id}",
                extra=ctx,
            )
            return await self._mark_failed(
                session_id, segment_index, "MALFORMED_SUMMARY", "Summarizer reply is not valid JSON"
            )

        # Stored as returned
        summary_key = storage_keys.segment_summary_key(session_id, segment_index)
        await self._object_storage.put(
            summary_key,
            reply.encode("utf-8"),
            storage_keys.JSON_CONTENT_TYPE,
        )

        segment = await self._entity_store.update_segment(
            session_id,
            segment_index,
            {"status": SegmentStatus.SUCCEEDED, "summary_key": summary_key},
        )
        logger.info(f"✅ Segment {segment_index} of {session_id} summarized", extra=ctx)
        return segment

    async def _mark_failed(self, session_id: str, segment_index: int, code: str, message: str) -> Segment:
        return await self._entity_store.update_segment(
            session_id,
            segment_index,
            {"status": SegmentStatus.FAILED, "error_code": code, "error_message": message},
        )
