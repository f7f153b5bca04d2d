"""
Transcription worker tests.
"""

from urllib.parse import parse_qs, urlparse

import pytest

from chunkscribe.application.dto.chunk_dto import ChunkJob
from chunkscribe.core.config import Settings
from chunkscribe.core.exceptions import TranscriptionSubmitError
from chunkscribe.domain.entities import Chunk, Session
from chunkscribe.domain.enums.status import ChunkStatus
from chunkscribe.workers.transcription_worker import TranscriptionWorker

from conftest import FakeSubmitter

AUDIO_KEY = "sessions/s1/raw/chunk-0-0-10300.webm"


@pytest.fixture
def settings():
    settings = Settings()
    settings.transcriber.callback_base = "https://api.test/transcription-callback"
    settings.azure_blob.presign_ttl_seconds = 600
    return settings


async def receive_chunk(store, queue, status=ChunkStatus.ENQUEUED, attempt=0):
    await store.create_session_if_absent(Session(session_id="s1"))
    await store.create_chunk_if_absent(
        Chunk(session_id="s1", seq=0, audio_key=AUDIO_KEY, start_ms=0, end_ms=10300, status=status, attempt=attempt)
    )
    await queue.enqueue(ChunkJob(session_id="s1", seq=0, audio_key=AUDIO_KEY, start_ms=0, end_ms=10300))
    return (await queue.receive())[0]


@pytest.mark.asyncio
async def test_submits_chunk_and_records_remote_job(store, storage, queue, submitter, settings):
    worker = TranscriptionWorker(store, storage, queue, submitter, settings)
    message = await receive_chunk(store, queue)

    await worker.process_job(message)

    chunk = await store.get_chunk("s1", 0)
    assert chunk.status == ChunkStatus.QUEUED_REMOTE
    assert chunk.remote_job_id == "remote-1"
    assert chunk.attempt == 1
    assert queue.acked == [message]

    job, audio_url, webhook_url = submitter.calls[0]
    assert audio_url == f"https://blob.test/test-container/{AUDIO_KEY}?ttl=600"
    parsed = urlparse(webhook_url)
    assert parsed.path == "/transcription-callback"
    query = parse_qs(parsed.query)
    assert query["sessionId"] == ["s1"]
    assert query["seq"] == ["0"]
    assert query["startMs"] == ["0"]
    assert query["endMs"] == ["10300"]
    assert query["container"] == ["test-container"]
    assert query["key"] == [AUDIO_KEY]


@pytest.mark.asyncio
async def test_redelivered_message_not_resubmitted(store, storage, queue, submitter, settings):
    worker = TranscriptionWorker(store, storage, queue, submitter, settings)
    message = await receive_chunk(store, queue, status=ChunkStatus.IN_PROGRESS)

    await worker.process_job(message)

    assert submitter.calls == []
    assert queue.acked == [message]
    assert (await store.get_chunk("s1", 0)).status == ChunkStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_submit_failure_dead_letters_message(store, storage, queue, settings):
    submitter = FakeSubmitter(error=TranscriptionSubmitError("HTTP 503 from transcriber"))
    worker = TranscriptionWorker(store, storage, queue, submitter, settings)
    message = await receive_chunk(store, queue)

    await worker.process_job(message)

    assert queue.nacked == [message]
    assert queue.acked == []
    chunk = await store.get_chunk("s1", 0)
    assert chunk.status == ChunkStatus.ENQUEUED
    assert chunk.attempt == 0


@pytest.mark.asyncio
async def test_retrying_chunk_is_submittable(store, storage, queue, submitter, settings):
    worker = TranscriptionWorker(store, storage, queue, submitter, settings)
    message = await receive_chunk(store, queue, status=ChunkStatus.RETRYING, attempt=1)

    await worker.process_job(message)

    chunk = await store.get_chunk("s1", 0)
    assert chunk.status == ChunkStatus.QUEUED_REMOTE
    assert chunk.attempt == 2


@pytest.mark.asyncio
async def test_message_for_unknown_chunk_is_dropped(store, storage, queue, submitter, settings):
    worker = TranscriptionWorker(store, storage, queue, submitter, settings)
    await queue.enqueue(ChunkJob(session_id="gone", seq=3, audio_key="k", start_ms=0, end_ms=1))
    message = (await queue.receive())[0]

    await worker.process_job(message)

    assert queue.acked == [message]
    assert submitter.calls == []


@pytest.mark.asyncio
async def test_run_drains_queue_until_stopped(store, storage, queue, submitter, settings):
    settings.azure_queue.poll_interval = 0.01
    worker = TranscriptionWorker(store, storage, queue, submitter, settings)
    message = await receive_chunk(store, queue)
    queue.pending.append(message)

    original_ack = queue.ack

    async def ack_and_stop(msg):
        await original_ack(msg)
        worker.stop()

    queue.ack = ack_and_stop
    await worker.run()

    assert (await store.get_chunk("s1", 0)).status == ChunkStatus.QUEUED_REMOTE
    assert queue.acked == [message]
