"""
Shared fakes and fixtures.

The fakes implement the application ports in memory and record every call,
so tests can assert on side effects (storage writes, queue traffic, remote
submissions, summarizer invocations) without Azure or HTTP.
"""

import asyncio
import json
from typing import Dict, List, Optional

import pytest

from chunkscribe.adapters.db.memory.entity_store import InMemoryEntityStore
from chunkscribe.application.dto.chunk_dto import ChunkJob, QueueMessage
from chunkscribe.application.dto.transcription_dto import TranscriptionResult
from chunkscribe.application.ports.services.object_storage import ObjectStorage
from chunkscribe.application.ports.services.summarizer_service import SummarizerService
from chunkscribe.application.ports.services.transcription_submitter import TranscriptionSubmitter
from chunkscribe.application.ports.services.work_queue import WorkQueue
from chunkscribe.application.use_cases.session_orchestrator import SessionOrchestrator
from chunkscribe.application.use_cases.summarize_segment import SegmentSummarizer


class FakeObjectStorage(ObjectStorage):
    def __init__(self, container: str = "test-container"):
        self._container = container
        self.objects: Dict[str, bytes] = {}
        self.content_types: Dict[str, str] = {}
        self.put_count = 0

    @property
    def container(self) -> str:
        return self._container

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        self.put_count += 1
        self.objects[key] = data
        self.content_types[key] = content_type

    async def get(self, key: str) -> bytes:
        if key not in self.objects:
            raise FileNotFoundError(key)
        return self.objects[key]

    async def presigned_get_url(self, key: str, ttl_seconds: int) -> str:
        return f"https://blob.test/{self._container}/{key}?ttl={ttl_seconds}"

    def json(self, key: str):
        return json.loads(self.objects[key].decode("utf-8"))


class FakeWorkQueue(WorkQueue):
    def __init__(self):
        self.pending: List[QueueMessage] = []
        self.enqueued: List[ChunkJob] = []
        self.acked: List[QueueMessage] = []
        self.nacked: List[QueueMessage] = []

    async def enqueue(self, job: ChunkJob) -> str:
        message_id = f"msg-{len(self.enqueued) + 1}"
        self.enqueued.append(job)
        self.pending.append(QueueMessage(job=job, message_id=message_id, pop_receipt=f"pop-{message_id}"))
        return message_id

    async def receive(self, max_messages: int = 1) -> List[QueueMessage]:
        batch, self.pending = self.pending[:max_messages], self.pending[max_messages:]
        return batch

    async def ack(self, message: QueueMessage) -> None:
        self.acked.append(message)

    async def nack(self, message: QueueMessage) -> None:
        self.nacked.append(message)


class FakeSubmitter(TranscriptionSubmitter):
    def __init__(self, job_id: str = "remote-1", error: Optional[Exception] = None):
        self.job_id = job_id
        self.error = error
        self.calls = []

    async def submit(self, job: ChunkJob, audio_url: str, webhook_url: str) -> str:
        self.calls.append((job, audio_url, webhook_url))
        if self.error is not None:
            raise self.error
        return self.job_id


class FakeSummarizer(SummarizerService):
    def __init__(
        self,
        segment_reply: str = '{"summary": "segment summary"}',
        finalize_reply: str = '{"status": "done"}',
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        self.segment_reply = segment_reply
        self.finalize_reply = finalize_reply
        self.error = error
        self.delay = delay
        self.segment_calls = []
        self.finalize_calls = []

    async def summarize_segment(self, session, segment_index: int, text: str) -> str:
        self.segment_calls.append((session.session_id, segment_index, text))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.segment_reply

    async def finalize(self, session, consolidated_key: str, container: str) -> str:
        self.finalize_calls.append((session.session_id, consolidated_key, container))
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.finalize_reply


def make_result(*words, language: str = "he") -> TranscriptionResult:
    """Result with top-level word timestamps given as (text, start, end) tuples."""
    return TranscriptionResult.from_payload(
        {
            "words": [{"word": text, "start": start, "end": end} for text, start, end in words],
            "language": language,
        }
    )


@pytest.fixture
def store():
    return InMemoryEntityStore()


@pytest.fixture
def storage():
    return FakeObjectStorage()


@pytest.fixture
def queue():
    return FakeWorkQueue()


@pytest.fixture
def summarizer():
    return FakeSummarizer()


@pytest.fixture
def submitter():
    return FakeSubmitter()


@pytest.fixture
def segment_summarizer(store, storage, summarizer):
    return SegmentSummarizer(store, storage, summarizer, timeout_seconds=1.0)


@pytest.fixture
def orchestrator(store, storage, segment_summarizer):
    return SessionOrchestrator(store, storage, segment_summarizer, token_threshold=1200, watermark_epsilon=0.15)
