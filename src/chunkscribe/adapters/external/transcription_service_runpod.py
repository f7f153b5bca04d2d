"""
Serverless Whisper endpoint submitter (RunPod-style async ``/run`` API).

The endpoint accepts a job with a presigned audio URL and later POSTs the
job status and output to the webhook, which carries the chunk correlation in
its query string.
"""

import logging
from typing import Any, Dict
from urllib.parse import urlencode

import aiohttp

from ...application.dto.chunk_dto import ChunkJob
from ...application.ports.services.transcription_submitter import TranscriptionSubmitter
from ...core.config import TranscriberSettings
from ...core.exceptions import ConfigurationError, TranscriptionSubmitError

logger = logging.getLogger(__name__)


def build_webhook_url(callback_base: str, job: ChunkJob, container: str = "") -> str:
    """Callback URL carrying session, sequence, offsets and audio key."""
    params = {
        "sessionId": job.session_id,
        "seq": job.seq,
        "startMs": job.start_ms,
        "endMs": job.end_ms,
    }
    if container:
        params["container"] = container
    params["key"] = job.audio_key
    separator = "&" if "?" in callback_base else "?"
    return f"{callback_base}{separator}{urlencode(params)}"


def build_request_body(settings: TranscriberSettings, audio_url: str, webhook_url: str) -> Dict[str, Any]:
    return {
        "input": {
            "word_timestamps": settings.word_timestamps,
            "model": settings.model,
            "audio": audio_url,
            "language": settings.language,
            "enable_vad": settings.enable_vad,
            "transcription": "formatted_text",
            "condition_on_previous_text": False,
        },
        "webhook": webhook_url,
    }


class RunPodTranscriptionSubmitter(TranscriptionSubmitter):
    """Submits chunks to a serverless Whisper endpoint over HTTP."""

    def __init__(self, settings: TranscriberSettings):
        self.settings = settings

    async def submit(self, job: ChunkJob, audio_url: str, webhook_url: str) -> str:
        if not self.settings.endpoint:
            raise ConfigurationError("Transcriber endpoint is required. Set TRANSCRIBER_ENDPOINT")

        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {self.settings.api_key}",
        }
        body = build_request_body(self.settings, audio_url, webhook_url)
        ctx = {"session_id": job.session_id, "seq": job.seq, "stage": "submit"}

        logger.info(
            f"📤 Submitting chunk {job.seq} of {job.session_id} (model={self.settings.model}, "
            f"language={self.settings.language})",
            extra=ctx,
        )
        timeout = aiohttp.ClientTimeout(total=self.settings.timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.settings.endpoint, json=body, headers=headers) as response:
                    if response.status not in (200, 201, 202):
                        error_text = await response.text()
                        logger.error(f"❌ Transcriber rejected job: {response.status} {error_text}", extra=ctx)
                        raise TranscriptionSubmitError(
                            f"submit failed {response.status}",
                            {"status": response.status, "body": error_text[:500]},
                        )
                    try:
                        data = await response.json(content_type=None)
                    except ValueError:
                        data = {}
        except aiohttp.ClientError as e:
            raise TranscriptionSubmitError(f"submit failed: {e}") from e

        job_id = ""
        if isinstance(data, dict):
            job_id = str(data.get("id") or data.get("jobId") or "")
        logger.info(f"✅ Transcription job submitted: {job_id or 'NOT PROVIDED'}", extra=ctx)
        return job_id
