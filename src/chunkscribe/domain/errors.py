"""
Domain-specific error types for pipeline rule violations.
"""

from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base domain error."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class SessionNotFoundError(DomainError):
    """Session not found."""

    def __init__(self, session_id: str) -> None:
        message = f"Session with ID '{session_id}' not found"
        super().__init__(message, "SESSION_NOT_FOUND", {"session_id": session_id})


class ChunkNotFoundError(DomainError):
    """Chunk not found."""

    def __init__(self, session_id: str, seq: int) -> None:
        message = f"Chunk {seq} of session '{session_id}' not found"
        super().__init__(message, "CHUNK_NOT_FOUND", {"session_id": session_id, "seq": seq})


class SegmentNotFoundError(DomainError):
    """Segment not found."""

    def __init__(self, session_id: str, segment_index: int) -> None:
        message = f"Segment {segment_index} of session '{session_id}' not found"
        super().__init__(
            message,
            "SEGMENT_NOT_FOUND",
            {"session_id": session_id, "segment_index": segment_index},
        )


class DuplicateSegmentError(DomainError):
    """Segment index already taken."""

    def __init__(self, session_id: str, segment_index: int) -> None:
        message = f"Segment {segment_index} of session '{session_id}' already exists"
        super().__init__(
            message,
            "DUPLICATE_SEGMENT",
            {"session_id": session_id, "segment_index": segment_index},
        )


class ConcurrencyConflictError(DomainError):
    """Rolling-state commit kept losing to concurrent writers."""

    def __init__(self, session_id: str, attempts: int) -> None:
        message = (
            f"Session '{session_id}' rolling state changed concurrently; "
            f"gave up after {attempts} attempts"
        )
        super().__init__(
            message, "CONCURRENCY_CONFLICT", {"session_id": session_id, "attempts": attempts}
        )


class InvalidChunkTransitionError(DomainError):
    """Chunk cannot move to the requested status."""

    def __init__(self, session_id: str, seq: int, current: str, target: str) -> None:
        message = f"Chunk {seq} of session '{session_id}' cannot move from {current} to {target}"
        super().__init__(
            message,
            "INVALID_CHUNK_TRANSITION",
            {"session_id": session_id, "seq": seq, "current": current, "target": target},
        )


class MalformedTranscriptionResultError(DomainError):
    """Transcription payload has no usable shape."""

    def __init__(self, reason: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(f"Malformed transcription result: {reason}", "MALFORMED_RESULT", details)


class SessionClosedError(DomainError):
    """Session no longer accepts the operation."""

    def __init__(self, session_id: str, status: str) -> None:
        message = f"Session '{session_id}' is {status} and no longer accepts chunks"
        super().__init__(message, "SESSION_CLOSED", {"session_id": session_id, "status": status})
