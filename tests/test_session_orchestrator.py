"""
Session orchestrator tests: merge, segmentation and concurrent completions.
"""

import asyncio

import pytest

from chunkscribe.adapters.db.memory.entity_store import InMemoryEntityStore
from chunkscribe.application.use_cases import session_orchestrator
from chunkscribe.application.use_cases.session_orchestrator import SessionOrchestrator
from chunkscribe.application.use_cases.summarize_segment import SegmentSummarizer
from chunkscribe.domain.entities import Chunk, Session
from chunkscribe.domain.enums.status import ChunkStatus, SegmentStatus, SessionStatus
from chunkscribe.domain.errors import ConcurrencyConflictError
from chunkscribe.domain.value_objects import storage_keys

from conftest import FakeObjectStorage, make_result


async def seed_chunk(store, session_id, seq, start_ms, end_ms, status=ChunkStatus.IN_PROGRESS):
    await store.create_session_if_absent(Session(session_id=session_id, status=SessionStatus.TRANSCRIBING))
    await store.create_chunk_if_absent(
        Chunk(session_id=session_id, seq=seq, start_ms=start_ms, end_ms=end_ms, status=status)
    )


def build_orchestrator(store, storage, summarizer, **kwargs):
    return SessionOrchestrator(store, storage, SegmentSummarizer(store, storage, summarizer), **kwargs)


@pytest.mark.asyncio
async def test_second_chunk_crosses_threshold_and_cuts_segment(store, storage, summarizer):
    orchestrator = build_orchestrator(store, storage, summarizer, token_threshold=40)
    await seed_chunk(store, "s1", 0, 0, 5000)
    await seed_chunk(store, "s1", 1, 5000, 10000)

    first = await orchestrator.handle_chunk_success("s1", 0, make_result(("a" * 80, 0.0, 5.0)), 0)
    assert first.merged
    assert first.segment_index is None
    session = await store.get_session("s1")
    assert session.rolling_token_count == 20
    assert session.next_segment_index == 0

    second = await orchestrator.handle_chunk_success("s1", 1, make_result(("b" * 100, 0.0, 1.0)), 5000)
    assert second.segment_index == 0

    session = await store.get_session("s1")
    assert session.rolling_text == ""
    assert session.rolling_token_count == 0
    assert session.next_segment_index == 1

    segment = await store.get_segment("s1", 0)
    assert segment.token_count == 45
    assert segment.status == SegmentStatus.SUCCEEDED
    assert segment.summary_key == storage_keys.segment_summary_key("s1", 0)

    input_text = storage.objects[storage_keys.segment_input_key("s1", 0)].decode("utf-8")
    assert input_text == "a" * 80 + " " + "b" * 100
    assert summarizer.segment_calls == [("s1", 0, input_text)]


@pytest.mark.asyncio
async def test_overlapping_chunk_drops_repeated_word(store, storage, summarizer):
    orchestrator = build_orchestrator(store, storage, summarizer, watermark_epsilon=0.05)
    await seed_chunk(store, "s1", 1, 0, 10300)
    await seed_chunk(store, "s1", 2, 10000, 10800)

    await orchestrator.handle_chunk_success(
        "s1", 1, make_result(("alpha", 9.5, 10.0), ("beta", 10.0, 10.3)), 0
    )
    await orchestrator.handle_chunk_success(
        "s1", 2, make_result(("beta", 0.0, 0.2), ("gamma", 0.2, 0.35), ("delta", 0.35, 0.8)), 10000
    )

    session = await store.get_session("s1")
    assert session.rolling_text == "alpha beta gamma delta"
    assert session.last_kept_end_seconds == pytest.approx(10.8)


@pytest.mark.asyncio
async def test_success_marks_chunk_and_stores_transcript(orchestrator, store, storage):
    await seed_chunk(store, "s1", 0, 0, 1000)
    outcome = await orchestrator.handle_chunk_success("s1", 0, make_result(("hi", 0.0, 0.5), language="en"), 0)

    chunk = await store.get_chunk("s1", 0)
    assert chunk.status == ChunkStatus.SUCCEEDED
    assert chunk.language == "en"
    assert chunk.transcript_key == outcome.transcript_key == storage_keys.transcript_key("s1", 0)
    assert storage.json(chunk.transcript_key)["words"][0]["word"] == "hi"


@pytest.mark.asyncio
async def test_duplicate_success_has_no_side_effects(orchestrator, store, storage):
    await seed_chunk(store, "s1", 0, 0, 1000)
    result = make_result(("hi", 0.0, 0.5))
    await orchestrator.handle_chunk_success("s1", 0, result, 0)
    session_before = await store.get_session("s1")
    puts_before = storage.put_count

    outcome = await orchestrator.handle_chunk_success("s1", 0, result, 0)

    assert outcome.duplicate
    assert storage.put_count == puts_before
    assert await store.get_session("s1") == session_before


@pytest.mark.asyncio
async def test_out_of_order_chunk_keeps_watermark(orchestrator, store):
    await seed_chunk(store, "s1", 0, 0, 5000)
    await seed_chunk(store, "s1", 1, 5000, 10000)

    await orchestrator.handle_chunk_success("s1", 1, make_result(("later", 0.0, 4.0)), 5000)
    await orchestrator.handle_chunk_success("s1", 0, make_result(("earlier", 0.0, 4.0)), 0)

    session = await store.get_session("s1")
    assert session.last_kept_end_seconds == pytest.approx(9.0)
    assert session.rolling_text == "later"


@pytest.mark.asyncio
async def test_offset_falls_back_to_chunk_start(orchestrator, store):
    await seed_chunk(store, "s1", 0, 3000, 4000)
    await orchestrator.handle_chunk_success("s1", 0, make_result(("word", 0.0, 0.5)))
    assert (await store.get_session("s1")).last_kept_end_seconds == pytest.approx(3.5)


@pytest.mark.asyncio
async def test_unknown_chunk_and_session_are_created(orchestrator, store):
    outcome = await orchestrator.handle_chunk_success("fresh", 4, make_result(("x", 0.0, 0.5)), 2000)
    assert outcome.merged
    chunk = await store.get_chunk("fresh", 4)
    assert chunk.status == ChunkStatus.SUCCEEDED
    assert chunk.start_ms == 2000
    assert (await store.get_session("fresh")).rolling_text == "x"


@pytest.mark.asyncio
async def test_recording_session_moves_to_transcribing(orchestrator, store):
    await store.create_session_if_absent(Session(session_id="s1"))
    await store.create_chunk_if_absent(Chunk(session_id="s1", seq=0, status=ChunkStatus.IN_PROGRESS))
    await orchestrator.handle_chunk_success("s1", 0, make_result(("x", 0.0, 0.5)), 0)
    assert (await store.get_session("s1")).status == SessionStatus.TRANSCRIBING


@pytest.mark.asyncio
async def test_chunk_completing_after_finalize_is_not_merged(orchestrator, store, storage):
    await seed_chunk(store, "s1", 0, 0, 1000)
    await store.update_session("s1", {"end_requested": True, "status": SessionStatus.FINALIZING})

    outcome = await orchestrator.handle_chunk_success("s1", 0, make_result(("late", 0.0, 0.5)), 0)

    assert not outcome.merged
    assert storage_keys.transcript_key("s1", 0) in storage.objects
    assert (await store.get_chunk("s1", 0)).status == ChunkStatus.SUCCEEDED
    assert (await store.get_session("s1")).rolling_text == ""


class YieldingStore(InMemoryEntityStore):
    """Yields to the loop on every session read so completions interleave."""

    def __init__(self):
        super().__init__()
        self.conflicts = 0

    async def get_session(self, session_id):
        await asyncio.sleep(0)
        return await super().get_session(session_id)

    async def commit_rolling_state(self, session_id, expected_version, changes, new_segment=None):
        committed = await super().commit_rolling_state(session_id, expected_version, changes, new_segment)
        if not committed:
            self.conflicts += 1
        return committed


@pytest.mark.asyncio
async def test_concurrent_completions_lose_no_text(storage, summarizer):
    store = YieldingStore()
    orchestrator = build_orchestrator(store, storage, summarizer, watermark_epsilon=5.0)
    for seq in range(4):
        await seed_chunk(store, "s1", seq, seq * 1000, seq * 1000 + 1000)

    await asyncio.gather(
        *[
            orchestrator.handle_chunk_success("s1", seq, make_result((f"w{seq}", 0.0, 1.0)), seq * 1000)
            for seq in range(4)
        ]
    )

    session = await store.get_session("s1")
    assert sorted(session.rolling_text.split()) == ["w0", "w1", "w2", "w3"]
    assert session.version == 4
    assert session.last_kept_end_seconds == pytest.approx(4.0)
    assert store.conflicts > 0


class AlwaysStaleStore(InMemoryEntityStore):
    async def commit_rolling_state(self, session_id, expected_version, changes, new_segment=None):
        return False


@pytest.mark.asyncio
async def test_commit_gives_up_after_max_retries(storage, summarizer):
    store = AlwaysStaleStore()
    orchestrator = build_orchestrator(store, storage, summarizer, max_commit_retries=3)
    await seed_chunk(store, "s1", 0, 0, 1000)

    with pytest.raises(ConcurrencyConflictError):
        await orchestrator.handle_chunk_success("s1", 0, make_result(("x", 0.0, 0.5)), 0)


@pytest.mark.asyncio
async def test_commit_retries_back_off_with_growing_jitter(storage, summarizer, monkeypatch):
    bounds = []

    def fake_uniform(low, high):
        bounds.append((low, high))
        return 0.0

    monkeypatch.setattr(session_orchestrator.random, "uniform", fake_uniform)
    store = AlwaysStaleStore()
    orchestrator = build_orchestrator(
        store, storage, summarizer, max_commit_retries=3, commit_backoff_seconds=0.01
    )
    await seed_chunk(store, "s1", 0, 0, 1000)

    with pytest.raises(ConcurrencyConflictError):
        await orchestrator.handle_chunk_success("s1", 0, make_result(("x", 0.0, 0.5)), 0)

    assert [low for low, _ in bounds] == [0, 0, 0]
    assert [high for _, high in bounds] == pytest.approx([0.01, 0.02, 0.03])


class FlakyCommitStore(InMemoryEntityStore):
    """Rejects the first ``failures`` rolling-state commits."""

    def __init__(self, failures):
        super().__init__()
        self.failures = failures

    async def commit_rolling_state(self, session_id, expected_version, changes, new_segment=None):
        if self.failures > 0:
            self.failures -= 1
            return False
        return await super().commit_rolling_state(session_id, expected_version, changes, new_segment)


@pytest.mark.asyncio
async def test_redelivery_after_exhausted_commit_is_merged(storage, summarizer):
    store = FlakyCommitStore(failures=2)
    orchestrator = build_orchestrator(
        store, storage, summarizer, max_commit_retries=2, commit_backoff_seconds=0
    )
    await seed_chunk(store, "s1", 0, 0, 1000)
    result = make_result(("kept", 0.0, 0.5))

    with pytest.raises(ConcurrencyConflictError):
        await orchestrator.handle_chunk_success("s1", 0, result, 0)
    assert (await store.get_chunk("s1", 0)).has_recorded_transcript
    assert (await store.get_session("s1")).rolling_text == ""
    puts_before = storage.put_count

    retried = await orchestrator.handle_chunk_success("s1", 0, result, 0)

    assert retried.merged
    assert not retried.duplicate
    assert storage.put_count == puts_before
    session = await store.get_session("s1")
    assert session.rolling_text == "kept"
    assert session.merged_seqs == [0]

    again = await orchestrator.handle_chunk_success("s1", 0, result, 0)
    assert again.duplicate


class YieldingStorage(FakeObjectStorage):
    """Yields to the loop on every write, like the executor-backed blob client."""

    async def put(self, key, data, content_type):
        await asyncio.sleep(0)
        await super().put(key, data, content_type)


@pytest.mark.asyncio
async def test_overlapping_duplicate_deliveries_merge_once(store, summarizer):
    storage = YieldingStorage()
    orchestrator = build_orchestrator(store, storage, summarizer, watermark_epsilon=0.05)
    await seed_chunk(store, "s1", 1, 0, 10300)
    await seed_chunk(store, "s1", 2, 10000, 10800)
    await orchestrator.handle_chunk_success(
        "s1", 1, make_result(("alpha", 9.5, 10.0), ("beta", 10.0, 10.3)), 0
    )
    version_before = (await store.get_session("s1")).version

    result = make_result(("beta", 0.0, 0.2), ("gamma", 0.2, 0.35), ("delta", 0.35, 0.8))
    outcomes = await asyncio.gather(
        orchestrator.handle_chunk_success("s1", 2, result, 10000),
        orchestrator.handle_chunk_success("s1", 2, result, 10000),
    )

    assert sorted(o.merged for o in outcomes) == [False, True]
    assert sorted(o.duplicate for o in outcomes) == [False, True]
    session = await store.get_session("s1")
    assert session.rolling_text == "alpha beta gamma delta"
    assert session.last_kept_end_seconds == pytest.approx(10.8)
    assert session.merged_seqs == [1, 2]
    assert session.version == version_before + 1


@pytest.mark.asyncio
async def test_segment_indices_stay_contiguous_across_cuts_and_flush(store, storage, summarizer):
    orchestrator = build_orchestrator(store, storage, summarizer, token_threshold=10)
    words = [f"{seq}" * 24 for seq in range(7)]
    for seq, word in enumerate(words):
        await seed_chunk(store, "s1", seq, seq * 1000, seq * 1000 + 1000)
        await orchestrator.handle_chunk_success("s1", seq, make_result((word, 0.0, 0.9)), seq * 1000)

    flushed = await orchestrator.flush_rolling_buffer("s1")

    session = await store.get_session("s1")
    assert flushed is not None
    assert flushed.segment_index == 3
    assert session.next_segment_index == 4
    segments = await store.list_segments("s1")
    assert [s.segment_index for s in segments] == list(range(session.next_segment_index))
    assert session.rolling_text == ""

    inputs = [
        storage.objects[storage_keys.segment_input_key("s1", i)].decode("utf-8")
        for i in range(session.next_segment_index)
    ]
    assert " ".join(inputs).split() == words
    assert [call[1] for call in summarizer.segment_calls] == [0, 1, 2, 3]

@pytest.mark.asyncio
async def test_flush_cuts_remaining_buffer(orchestrator, store, summarizer):
    await seed_chunk(store, "s1", 0, 0, 1000)
    await orchestrator.handle_chunk_success("s1", 0, make_result(("tail", 0.0, 0.5)), 0)

    cut = await orchestrator.flush_rolling_buffer("s1")

    assert cut.segment_index == 0
    assert cut.text == "tail"
    assert (await store.get_segment("s1", 0)).status == SegmentStatus.SUCCEEDED
    assert (await store.get_session("s1")).next_segment_index == 1
    assert len(summarizer.segment_calls) == 1


@pytest.mark.asyncio
async def test_flush_empty_buffer_is_noop(orchestrator, store):
    await store.create_session_if_absent(Session(session_id="s1"))
    assert await orchestrator.flush_rolling_buffer("s1") is None
    assert (await store.get_session("s1")).version == 0


@pytest.mark.asyncio
async def test_set_chunk_status_respects_expected_status(orchestrator, store):
    await seed_chunk(store, "s1", 0, 0, 1000, status=ChunkStatus.ENQUEUED)
    assert await orchestrator.set_chunk_status(
        "s1", 0, ChunkStatus.FAILED, expected_status=[ChunkStatus.IN_PROGRESS]
    ) is None
    updated = await orchestrator.set_chunk_status("s1", 0, "IN_PROGRESS", remote_job_id="job-9")
    assert updated.status == ChunkStatus.IN_PROGRESS
    assert updated.remote_job_id == "job-9"
