"""
Status enums and the chunk transition graph.
"""

from enum import Enum


class SessionStatus(str, Enum):
    """Lifecycle of a recording session."""

    RECORDING = "RECORDING"
    TRANSCRIBING = "TRANSCRIBING"
    FINALIZING = "FINALIZING"
    COMPLETE = "COMPLETE"
    # Set only by external collaborators
    ERROR = "ERROR"
    CANCELLED = "CANCELLED"


class SegmentStatus(str, Enum):
    """Summarization lifecycle of a cut segment."""

    PENDING = "PENDING"
    SUMMARIZING = "SUMMARIZING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


class ChunkStatus(str, Enum):
    """Lifecycle of one uploaded audio chunk."""

    UPLOADED = "UPLOADED"
    ENQUEUED = "ENQUEUED"
    QUEUED_REMOTE = "QUEUED_REMOTE"
    IN_PROGRESS = "IN_PROGRESS"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    TIMED_OUT = "TIMED_OUT"
    RETRYING = "RETRYING"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL

    @property
    def is_retryable(self) -> bool:
        return self in _RETRYABLE

    @property
    def is_failure(self) -> bool:
        return self in _RETRYABLE

    def can_transition_to(self, target: "ChunkStatus") -> bool:
        """Whether moving from this status to ``target`` is a legal forward step.

        Same-state moves are not transitions. SUCCEEDED is final; a late
        success still wins over a reported failure. RETRYING is reachable only
        from a retryable failure and leads back into the queue.
        """
        if target == self or self == ChunkStatus.SUCCEEDED:
            return False
        if target == ChunkStatus.SUCCEEDED:
            return True
        if target == ChunkStatus.RETRYING:
            return self.is_retryable
        if self.is_terminal:
            return False
        return _RANK[target] > _RANK[self]


_TERMINAL = frozenset(
    {ChunkStatus.SUCCEEDED, ChunkStatus.FAILED, ChunkStatus.CANCELLED, ChunkStatus.TIMED_OUT}
)
_RETRYABLE = frozenset({ChunkStatus.FAILED, ChunkStatus.CANCELLED, ChunkStatus.TIMED_OUT})

_RANK = {
    ChunkStatus.UPLOADED: 0,
    ChunkStatus.RETRYING: 1,
    ChunkStatus.ENQUEUED: 2,
    ChunkStatus.QUEUED_REMOTE: 3,
    ChunkStatus.IN_PROGRESS: 4,
    ChunkStatus.SUCCEEDED: 5,
    ChunkStatus.FAILED: 5,
    ChunkStatus.CANCELLED: 5,
    ChunkStatus.TIMED_OUT: 5,
}
