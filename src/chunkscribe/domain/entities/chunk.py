"""Chunk entity: one uploaded audio fragment of a session."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple

from ..enums.status import ChunkStatus


@dataclass
class Chunk:
    """Uploaded audio fragment, keyed by (session_id, seq)."""

    session_id: str
    seq: int
    audio_key: Optional[str] = None
    start_ms: int = 0
    end_ms: int = 0
    status: ChunkStatus = ChunkStatus.UPLOADED
    attempt: int = 0
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    transcript_key: Optional[str] = None
    language: Optional[str] = None
    remote_job_id: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def key(self) -> Tuple[str, int]:
        return (self.session_id, self.seq)

    @property
    def has_recorded_transcript(self) -> bool:
        """A success whose side effects are already durable."""
        return self.status == ChunkStatus.SUCCEEDED and bool(self.transcript_key)
