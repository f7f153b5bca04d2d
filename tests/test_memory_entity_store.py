"""
In-memory entity store tests.
"""

import pytest

from chunkscribe.domain.entities import Chunk, Segment, Session
from chunkscribe.domain.enums.status import ChunkStatus, SegmentStatus
from chunkscribe.domain.errors import (
    ChunkNotFoundError,
    DuplicateSegmentError,
    SegmentNotFoundError,
    SessionNotFoundError,
)


@pytest.mark.asyncio
async def test_create_session_if_absent_is_idempotent(store):
    assert await store.create_session_if_absent(Session(session_id="s1", therapist_id=7))
    assert not await store.create_session_if_absent(Session(session_id="s1", therapist_id=99))
    session = await store.get_session("s1")
    assert session.therapist_id == 7
    assert session.version == 0


@pytest.mark.asyncio
async def test_returned_records_are_copies(store):
    await store.create_session_if_absent(Session(session_id="s1"))
    session = await store.get_session("s1")
    session.rolling_text = "mutated"
    assert (await store.get_session("s1")).rolling_text == ""


@pytest.mark.asyncio
async def test_update_session_bumps_version(store):
    await store.create_session_if_absent(Session(session_id="s1"))
    updated = await store.update_session("s1", {"end_requested": True, "version": 42})
    assert updated.end_requested
    assert updated.version == 1


@pytest.mark.asyncio
async def test_update_unknown_session_raises(store):
    with pytest.raises(SessionNotFoundError):
        await store.update_session("missing", {"end_requested": True})


@pytest.mark.asyncio
async def test_update_rejects_unknown_fields(store):
    await store.create_session_if_absent(Session(session_id="s1"))
    with pytest.raises(ValueError):
        await store.update_session("s1", {"no_such_field": 1})


@pytest.mark.asyncio
async def test_commit_rolling_state_compare_and_swap(store):
    await store.create_session_if_absent(Session(session_id="s1"))

    assert await store.commit_rolling_state("s1", 0, {"rolling_text": "one", "rolling_token_count": 1})
    # Stale version loses
    assert not await store.commit_rolling_state("s1", 0, {"rolling_text": "two"})

    session = await store.get_session("s1")
    assert session.rolling_text == "one"
    assert session.version == 1


@pytest.mark.asyncio
async def test_commit_creates_segment_atomically(store):
    await store.create_session_if_absent(Session(session_id="s1"))
    segment = Segment(session_id="s1", segment_index=0, token_count=45)

    assert await store.commit_rolling_state("s1", 0, {"next_segment_index": 1}, segment)
    stored = await store.get_segment("s1", 0)
    assert stored.token_count == 45
    assert stored.status == SegmentStatus.PENDING

    with pytest.raises(DuplicateSegmentError):
        await store.commit_rolling_state("s1", 1, {"next_segment_index": 2}, segment)
    # Failed commit left the session untouched
    assert (await store.get_session("s1")).version == 1


@pytest.mark.asyncio
async def test_stale_commit_does_not_create_segment(store):
    await store.create_session_if_absent(Session(session_id="s1"))
    segment = Segment(session_id="s1", segment_index=0)
    assert not await store.commit_rolling_state("s1", 5, {}, segment)
    assert await store.get_segment("s1", 0) is None


@pytest.mark.asyncio
async def test_commit_unknown_session_raises(store):
    with pytest.raises(SessionNotFoundError):
        await store.commit_rolling_state("missing", 0, {})


@pytest.mark.asyncio
async def test_update_chunk_expected_status(store):
    await store.create_chunk_if_absent(Chunk(session_id="s1", seq=0))

    assert await store.update_chunk(
        "s1", 0, {"status": ChunkStatus.IN_PROGRESS}, expected_status=[ChunkStatus.ENQUEUED]
    ) is None
    updated = await store.update_chunk(
        "s1", 0, {"status": ChunkStatus.ENQUEUED}, expected_status=[ChunkStatus.UPLOADED]
    )
    assert updated.status == ChunkStatus.ENQUEUED


@pytest.mark.asyncio
async def test_update_unknown_chunk_raises(store):
    with pytest.raises(ChunkNotFoundError):
        await store.update_chunk("s1", 3, {"status": ChunkStatus.FAILED})


@pytest.mark.asyncio
async def test_lists_are_ordered(store):
    for seq in (2, 0, 1):
        await store.create_chunk_if_absent(Chunk(session_id="s1", seq=seq))
    await store.create_chunk_if_absent(Chunk(session_id="other", seq=0))
    assert [c.seq for c in await store.list_chunks("s1")] == [0, 1, 2]
    assert await store.list_segments("s1") == []


@pytest.mark.asyncio
async def test_update_unknown_segment_raises(store):
    with pytest.raises(SegmentNotFoundError):
        await store.update_segment("s1", 0, {"status": SegmentStatus.FAILED})
