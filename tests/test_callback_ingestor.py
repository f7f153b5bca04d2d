"""
Transcription callback ingestion tests.
"""

import pytest

from chunkscribe.application.dto.transcription_dto import TranscriptionCallback
from chunkscribe.application.use_cases.ingest_callback import CallbackIngestor
from chunkscribe.domain.entities import Chunk, Session
from chunkscribe.domain.enums.status import ChunkStatus

WORDS_OUTPUT = {"words": [{"word": "hello", "start": 0.0, "end": 0.5}], "language": "en"}


@pytest.fixture
def ingestor(store, orchestrator):
    return CallbackIngestor(store, orchestrator)


async def seed(store, status=ChunkStatus.QUEUED_REMOTE, **chunk_fields):
    await store.create_session_if_absent(Session(session_id="s1"))
    await store.create_chunk_if_absent(
        Chunk(session_id="s1", seq=0, start_ms=0, end_ms=1000, status=status, **chunk_fields)
    )


def callback(status, **kwargs):
    return TranscriptionCallback(session_id="s1", seq=0, status=status, start_ms=0, end_ms=1000, **kwargs)


@pytest.mark.asyncio
async def test_in_progress_applied(ingestor, store):
    await seed(store)
    outcome = await ingestor.execute(callback("in_progress", remote_job_id="job-1"))
    assert outcome.applied_status == ChunkStatus.IN_PROGRESS
    chunk = await store.get_chunk("s1", 0)
    assert chunk.status == ChunkStatus.IN_PROGRESS
    assert chunk.remote_job_id == "job-1"


@pytest.mark.asyncio
async def test_unknown_status_mutates_nothing(ingestor, store):
    await seed(store)
    before = await store.get_chunk("s1", 0)
    session_before = await store.get_session("s1")

    outcome = await ingestor.execute(callback("WEIRD_STATE", output=WORDS_OUTPUT))

    assert outcome.ignored
    assert outcome.reason == "unknown_status"
    assert await store.get_chunk("s1", 0) == before
    assert await store.get_session("s1") == session_before


@pytest.mark.asyncio
async def test_stale_status_ignored(ingestor, store):
    await seed(store, status=ChunkStatus.IN_PROGRESS)
    outcome = await ingestor.execute(callback("IN_QUEUE"))
    assert outcome.ignored
    assert outcome.reason == "stale_status"
    assert (await store.get_chunk("s1", 0)).status == ChunkStatus.IN_PROGRESS


@pytest.mark.asyncio
async def test_repeated_status_is_duplicate(ingestor, store):
    await seed(store, status=ChunkStatus.IN_PROGRESS)
    outcome = await ingestor.execute(callback("IN_PROGRESS"))
    assert outcome.duplicate
    assert not outcome.ignored


@pytest.mark.asyncio
async def test_failure_records_error(ingestor, store):
    await seed(store, status=ChunkStatus.IN_PROGRESS)
    outcome = await ingestor.execute(callback("FAILED", error="CUDA out of memory"))
    assert outcome.applied_status == ChunkStatus.FAILED
    chunk = await store.get_chunk("s1", 0)
    assert chunk.status == ChunkStatus.FAILED
    assert chunk.error_code == "FAILED"
    assert chunk.error_message == "CUDA out of memory"


@pytest.mark.asyncio
async def test_failure_after_success_is_ignored(ingestor, store):
    await seed(store)
    await ingestor.execute(callback("COMPLETED", output=WORDS_OUTPUT))
    outcome = await ingestor.execute(callback("FAILED"))
    assert outcome.ignored
    assert (await store.get_chunk("s1", 0)).status == ChunkStatus.SUCCEEDED


@pytest.mark.asyncio
async def test_status_for_unknown_chunk_ignored(ingestor):
    outcome = await ingestor.execute(callback("IN_PROGRESS"))
    assert outcome.ignored
    assert outcome.reason == "unknown_chunk"


@pytest.mark.asyncio
async def test_success_merges_transcript(ingestor, store, storage):
    await seed(store)
    outcome = await ingestor.execute(callback("COMPLETED", output=WORDS_OUTPUT))

    assert outcome.applied_status == ChunkStatus.SUCCEEDED
    assert not outcome.duplicate
    chunk = await store.get_chunk("s1", 0)
    assert chunk.status == ChunkStatus.SUCCEEDED
    assert chunk.transcript_key in storage.objects
    assert (await store.get_session("s1")).rolling_text == "hello"


@pytest.mark.asyncio
async def test_duplicate_success_changes_nothing(ingestor, store, storage):
    await seed(store)
    await ingestor.execute(callback("SUCCEEDED", output=WORDS_OUTPUT))
    chunk_before = await store.get_chunk("s1", 0)
    session_before = await store.get_session("s1")
    segments_before = await store.list_segments("s1")
    puts_before = storage.put_count

    outcome = await ingestor.execute(callback("SUCCEEDED", output=WORDS_OUTPUT))

    assert outcome.duplicate
    assert storage.put_count == puts_before
    assert await store.get_chunk("s1", 0) == chunk_before
    assert await store.get_session("s1") == session_before
    assert await store.list_segments("s1") == segments_before


@pytest.mark.asyncio
async def test_result_inlined_in_body(ingestor, store):
    await seed(store)
    outcome = await ingestor.execute(callback("COMPLETED", raw_body={"status": "COMPLETED", **WORDS_OUTPUT}))
    assert outcome.applied_status == ChunkStatus.SUCCEEDED


@pytest.mark.asyncio
async def test_malformed_success_marks_chunk_failed(ingestor, store):
    await seed(store, status=ChunkStatus.IN_PROGRESS)
    outcome = await ingestor.execute(callback("COMPLETED", output={"text": "no timings"}))

    assert outcome.applied_status == ChunkStatus.FAILED
    assert outcome.reason == "malformed_result"
    chunk = await store.get_chunk("s1", 0)
    assert chunk.status == ChunkStatus.FAILED
    assert chunk.error_code == "MALFORMED_RESULT"
    assert (await store.get_session("s1")).rolling_text == ""
