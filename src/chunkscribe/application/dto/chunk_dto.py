"""
Chunk upload and queue job DTOs.
"""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional

from ...domain.entities.chunk import Chunk
from ...domain.entities.session import identifier_changes


@dataclass
class ChunkUploadRequest:
    """Accepted upload of one audio chunk."""

    session_id: str
    seq: int
    start_ms: int
    end_ms: int
    content_type: Optional[str] = None
    therapist_id: Optional[int] = None
    patient_id: Optional[int] = None
    organization_id: Optional[int] = None
    appointment_id: Optional[int] = None

    def __post_init__(self) -> None:
        if not self.session_id or not self.session_id.strip():
            raise ValueError("sessionId is required")
        if self.seq < 0:
            raise ValueError("seq must be >= 0")
        if self.start_ms < 0 or self.end_ms < self.start_ms:
            raise ValueError("startMs/endMs must satisfy 0 <= startMs <= endMs")

    def identifiers(self) -> Dict[str, int]:
        return identifier_changes(
            therapist_id=self.therapist_id,
            patient_id=self.patient_id,
            organization_id=self.organization_id,
            appointment_id=self.appointment_id,
        )


@dataclass
class ChunkUploadResult:
    chunk: Chunk
    message_id: Optional[str] = None
    duplicate: bool = False


@dataclass
class ChunkJob:
    """Queue message body: everything the worker needs to submit one chunk."""

    session_id: str
    seq: int
    audio_key: str
    start_ms: int
    end_ms: int
    attempt: int = 0
    created_at: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ChunkJob":
        return cls(
            session_id=str(data["session_id"]),
            seq=int(data["seq"]),
            audio_key=str(data["audio_key"]),
            start_ms=int(data.get("start_ms", 0)),
            end_ms=int(data.get("end_ms", 0)),
            attempt=int(data.get("attempt", 0)),
            created_at=data.get("created_at") or datetime.utcnow().isoformat(),
        )


@dataclass
class QueueMessage:
    """Received queue message plus the receipt needed to ack or nack it."""

    job: ChunkJob
    message_id: str
    pop_receipt: str
    dequeue_count: int = 1
    raw: Optional[str] = None
