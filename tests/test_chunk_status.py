"""
Chunk state machine tests.
"""

import pytest

from chunkscribe.domain.enums.status import ChunkStatus


@pytest.mark.parametrize(
    "current,target",
    [
        (ChunkStatus.UPLOADED, ChunkStatus.ENQUEUED),
        (ChunkStatus.ENQUEUED, ChunkStatus.QUEUED_REMOTE),
        (ChunkStatus.QUEUED_REMOTE, ChunkStatus.IN_PROGRESS),
        (ChunkStatus.ENQUEUED, ChunkStatus.IN_PROGRESS),
        (ChunkStatus.IN_PROGRESS, ChunkStatus.FAILED),
        (ChunkStatus.FAILED, ChunkStatus.SUCCEEDED),
        (ChunkStatus.TIMED_OUT, ChunkStatus.RETRYING),
        (ChunkStatus.RETRYING, ChunkStatus.ENQUEUED),
    ],
)
def test_legal_transitions(current, target):
    assert current.can_transition_to(target)


@pytest.mark.parametrize(
    "current,target",
    [
        (ChunkStatus.IN_PROGRESS, ChunkStatus.QUEUED_REMOTE),
        (ChunkStatus.SUCCEEDED, ChunkStatus.FAILED),
        (ChunkStatus.SUCCEEDED, ChunkStatus.RETRYING),
        (ChunkStatus.FAILED, ChunkStatus.IN_PROGRESS),
        (ChunkStatus.IN_PROGRESS, ChunkStatus.RETRYING),
        (ChunkStatus.ENQUEUED, ChunkStatus.ENQUEUED),
    ],
)
def test_illegal_transitions(current, target):
    assert not current.can_transition_to(target)


def test_failure_statuses():
    assert {s for s in ChunkStatus if s.is_failure} == {
        ChunkStatus.FAILED,
        ChunkStatus.CANCELLED,
        ChunkStatus.TIMED_OUT,
    }
    assert ChunkStatus.SUCCEEDED.is_terminal
    assert not ChunkStatus.SUCCEEDED.is_retryable
