"""
MongoDB document models for sessions, chunks and segments.
"""

from datetime import datetime
from typing import List, Optional

from beanie import Document
from pydantic import Field
from pymongo import ASCENDING, IndexModel


class SessionMongo(Document):
    """MongoDB model for the Session entity."""

    session_id: str = Field(..., description="Caller-supplied session ID")
    status: str = Field(default="RECORDING")
    therapist_id: Optional[int] = None
    patient_id: Optional[int] = None
    organization_id: Optional[int] = None
    appointment_id: Optional[int] = None
    rolling_text: str = ""
    rolling_token_count: int = 0
    next_segment_index: int = 0
    last_kept_end_seconds: float = 0.0
    merged_seqs: List[int] = Field(default_factory=list)
    end_requested: bool = False
    version: int = Field(default=0, description="Compare-and-swap token for rolling-state commits")
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "sessions"
        indexes = [
            IndexModel([("session_id", ASCENDING)], unique=True),
            "status",
        ]


class ChunkMongo(Document):
    """MongoDB model for the Chunk entity."""

    session_id: str
    seq: int
    audio_key: Optional[str] = None
    start_ms: int = 0
    end_ms: int = 0
    status: str = Field(default="UPLOADED")
    attempt: int = 0
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    transcript_key: Optional[str] = None
    language: Optional[str] = None
    remote_job_id: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "chunks"
        indexes = [
            IndexModel([("session_id", ASCENDING), ("seq", ASCENDING)], unique=True),
            [("session_id", 1), ("status", 1)],
        ]


class SegmentMongo(Document):
    """MongoDB model for the Segment entity."""

    session_id: str
    segment_index: int
    token_count: int = 0
    status: str = Field(default="PENDING")
    summary_key: Optional[str] = None
    start_ms: Optional[int] = None
    end_ms: Optional[int] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    class Settings:
        name = "segments"
        indexes = [
            IndexModel([("session_id", ASCENDING), ("segment_index", ASCENDING)], unique=True),
        ]


DOCUMENT_MODELS = [SessionMongo, ChunkMongo, SegmentMongo]
