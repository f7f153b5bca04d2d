"""
HTTP-triggered summarizer and finalizer functions (Azure Functions).
"""

import logging
from typing import Any, Dict

import aiohttp

from ...application.ports.services.summarizer_service import SummarizerService
from ...core.config import SummarizerSettings
from ...core.exceptions import ConfigurationError, SummarizerError
from ...domain.entities.session import Session

logger = logging.getLogger(__name__)


def build_segment_payload(session: Session, segment_index: int, text: str) -> Dict[str, Any]:
    """One segment is sent as a single-chunk batch."""
    return {
        "sessionId": session.session_id,
        "therapistId": session.therapist_id,
        "patientId": session.patient_id,
        "organizationId": session.organization_id,
        "appointmentId": session.appointment_id,
        "userId": session.therapist_id,
        "chunks": [{"index": segment_index, "start": 0, "end": 0, "text": text}],
    }


def build_finalize_payload(session: Session, consolidated_key: str, container: str) -> Dict[str, Any]:
    return {
        "sessionId": session.session_id,
        "therapistId": session.therapist_id,
        "patientId": session.patient_id,
        "organizationId": session.organization_id,
        "appointmentId": session.appointment_id,
        "container": container,
        "key": consolidated_key,
    }


class HttpSummarizerService(SummarizerService):
    """Calls the summarizer functions with the function key header."""

    def __init__(self, settings: SummarizerSettings):
        self.settings = settings

    async def summarize_segment(self, session: Session, segment_index: int, text: str) -> str:
        return await self._post(
            self.settings.segment_url,
            build_segment_payload(session, segment_index, text),
            {"session_id": session.session_id, "segment_index": segment_index, "stage": "summarize"},
        )

    async def finalize(self, session: Session, consolidated_key: str, container: str) -> str:
        return await self._post(
            self.settings.finalizer_url,
            build_finalize_payload(session, consolidated_key, container),
            {"session_id": session.session_id, "stage": "finalize"},
        )

    async def _post(self, url: str, payload: Dict[str, Any], ctx: Dict[str, Any]) -> str:
        if not url:
            raise ConfigurationError(
                "Summarizer URL is required. Set SUMMARIZER_SEGMENT_URL and SUMMARIZER_FINALIZER_URL"
            )
        headers = {"Content-Type": "application/json"}
        if self.settings.function_key:
            headers["x-functions-key"] = self.settings.function_key

        timeout = aiohttp.ClientTimeout(total=self.settings.timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(url, json=payload, headers=headers) as response:
                    body = await response.text()
                    if response.status >= 300:
                        logger.error(f"❌ Summarizer call failed: {response.status} {body[:200]}", extra=ctx)
                        raise SummarizerError(
                            f"call failed {response.status}",
                            {"status": response.status, "body": body[:500]},
                        )
        except aiohttp.ClientError as e:
            raise SummarizerError(f"call failed: {e}") from e

        logger.debug(f"Summarizer replied with {len(body)} chars", extra=ctx)
        return body
