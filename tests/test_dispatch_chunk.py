"""
Chunk upload and retry tests.
"""

import pytest

from chunkscribe.application.dto.chunk_dto import ChunkUploadRequest
from chunkscribe.application.use_cases.dispatch_chunk import ChunkDispatcher
from chunkscribe.domain.entities import Chunk, Session
from chunkscribe.domain.enums.status import ChunkStatus, SessionStatus
from chunkscribe.domain.errors import ChunkNotFoundError, InvalidChunkTransitionError, SessionClosedError


@pytest.fixture
def dispatcher(store, storage, queue):
    return ChunkDispatcher(store, storage, queue)


def upload_request(seq=0, **kwargs):
    return ChunkUploadRequest(
        session_id="s1", seq=seq, start_ms=seq * 10000, end_ms=seq * 10000 + 10300, content_type="audio/webm", **kwargs
    )


def test_upload_request_validation():
    with pytest.raises(ValueError):
        ChunkUploadRequest(session_id=" ", seq=0, start_ms=0, end_ms=1)
    with pytest.raises(ValueError):
        ChunkUploadRequest(session_id="s1", seq=-1, start_ms=0, end_ms=1)
    with pytest.raises(ValueError):
        ChunkUploadRequest(session_id="s1", seq=0, start_ms=500, end_ms=100)


@pytest.mark.asyncio
async def test_upload_stores_audio_and_enqueues(dispatcher, store, storage, queue):
    result = await dispatcher.upload(upload_request(therapist_id=5), b"audio-bytes")

    assert not result.duplicate
    assert result.message_id == "msg-1"
    assert result.chunk.status == ChunkStatus.ENQUEUED
    assert result.chunk.audio_key == "sessions/s1/raw/chunk-0-0-10300.webm"
    assert storage.objects[result.chunk.audio_key] == b"audio-bytes"

    job = queue.enqueued[0]
    assert (job.session_id, job.seq, job.audio_key) == ("s1", 0, result.chunk.audio_key)
    assert (job.start_ms, job.end_ms) == (0, 10300)

    session = await store.get_session("s1")
    assert session.status == SessionStatus.TRANSCRIBING
    assert session.therapist_id == 5


@pytest.mark.asyncio
async def test_duplicate_upload_is_acknowledged(dispatcher, storage, queue):
    await dispatcher.upload(upload_request(), b"audio")
    result = await dispatcher.upload(upload_request(), b"audio")

    assert result.duplicate
    assert result.chunk.status == ChunkStatus.ENQUEUED
    assert len(queue.enqueued) == 1
    assert storage.put_count == 1


@pytest.mark.asyncio
async def test_upload_stuck_in_uploaded_is_enqueued_again(dispatcher, store, queue):
    await store.create_session_if_absent(Session(session_id="s1"))
    await store.create_chunk_if_absent(Chunk(session_id="s1", seq=0, status=ChunkStatus.UPLOADED))

    result = await dispatcher.upload(upload_request(), b"audio")

    assert not result.duplicate
    assert len(queue.enqueued) == 1
    assert (await store.get_chunk("s1", 0)).status == ChunkStatus.ENQUEUED


@pytest.mark.asyncio
async def test_upload_after_finalize_rejected(dispatcher, store, storage):
    await store.create_session_if_absent(Session(session_id="s1", end_requested=True, status=SessionStatus.FINALIZING))
    with pytest.raises(SessionClosedError):
        await dispatcher.upload(upload_request(), b"audio")
    assert storage.put_count == 0


@pytest.mark.asyncio
async def test_retry_failed_chunk(dispatcher, store, queue):
    await dispatcher.upload(upload_request(), b"audio")
    await store.update_chunk(
        "s1", 0, {"status": ChunkStatus.TIMED_OUT, "error_code": "TIMED_OUT", "attempt": 1, "remote_job_id": "r1"}
    )

    chunk = await dispatcher.retry("s1", 0)

    assert chunk.status == ChunkStatus.ENQUEUED
    assert chunk.error_code is None
    assert chunk.remote_job_id is None
    assert len(queue.enqueued) == 2
    assert queue.enqueued[1].attempt == 1


@pytest.mark.asyncio
async def test_retry_rejects_non_failed_chunk(dispatcher):
    await dispatcher.upload(upload_request(), b"audio")
    with pytest.raises(InvalidChunkTransitionError):
        await dispatcher.retry("s1", 0)


@pytest.mark.asyncio
async def test_retry_unknown_chunk(dispatcher):
    with pytest.raises(ChunkNotFoundError):
        await dispatcher.retry("s1", 9)
