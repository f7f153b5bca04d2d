"""
Request and response schemas for sessions, chunks, segments and callbacks.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from ...application.dto.session_dto import FinalizeRequest, FinalizeResult, SessionProgress
from ...domain.entities.chunk import Chunk
from ...domain.entities.segment import Segment
from ...domain.entities.session import Session


class SessionOut(BaseModel):
    session_id: str
    status: str
    therapist_id: Optional[int] = None
    patient_id: Optional[int] = None
    organization_id: Optional[int] = None
    appointment_id: Optional[int] = None
    rolling_token_count: int
    next_segment_index: int
    last_kept_end_seconds: float
    end_requested: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, session: Session) -> "SessionOut":
        return cls(
            session_id=session.session_id,
            status=session.status.value,
            rolling_token_count=session.rolling_token_count,
            next_segment_index=session.next_segment_index,
            last_kept_end_seconds=session.last_kept_end_seconds,
            end_requested=session.end_requested,
            created_at=session.created_at,
            updated_at=session.updated_at,
            **session.business_ids(),
        )


class ChunkOut(BaseModel):
    session_id: str
    seq: int
    status: str
    audio_key: Optional[str] = None
    start_ms: int
    end_ms: int
    attempt: int
    transcript_key: Optional[str] = None
    language: Optional[str] = None
    remote_job_id: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    updated_at: datetime

    @classmethod
    def from_entity(cls, chunk: Chunk) -> "ChunkOut":
        return cls(
            session_id=chunk.session_id,
            seq=chunk.seq,
            status=chunk.status.value,
            audio_key=chunk.audio_key,
            start_ms=chunk.start_ms,
            end_ms=chunk.end_ms,
            attempt=chunk.attempt,
            transcript_key=chunk.transcript_key,
            language=chunk.language,
            remote_job_id=chunk.remote_job_id,
            error_code=chunk.error_code,
            error_message=chunk.error_message,
            updated_at=chunk.updated_at,
        )


class SegmentOut(BaseModel):
    session_id: str
    segment_index: int
    status: str
    token_count: int
    summary_key: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    updated_at: datetime

    @classmethod
    def from_entity(cls, segment: Segment) -> "SegmentOut":
        return cls(
            session_id=segment.session_id,
            segment_index=segment.segment_index,
            status=segment.status.value,
            token_count=segment.token_count,
            summary_key=segment.summary_key,
            error_code=segment.error_code,
            error_message=segment.error_message,
            updated_at=segment.updated_at,
        )


class ProgressOut(BaseModel):
    session: SessionOut
    total: int
    done: int
    failed: int
    pct: float

    @classmethod
    def from_progress(cls, progress: SessionProgress) -> "ProgressOut":
        return cls(
            session=SessionOut.from_entity(progress.session),
            total=progress.total,
            done=progress.done,
            failed=progress.failed,
            pct=progress.pct,
        )


class UploadChunkOut(BaseModel):
    session_id: str
    seq: int
    key: Optional[str] = None
    status: str
    duplicate: bool = False
    message_id: Optional[str] = None


class CallbackOut(BaseModel):
    session_id: str
    seq: int
    remote_status: str
    applied_status: Optional[str] = None
    ignored: bool = False
    duplicate: bool = False
    reason: Optional[str] = None
    segment_index: Optional[int] = None


class FinalizeIn(BaseModel):
    """Finalize body; ids arrive camelCased from the recording client."""

    model_config = ConfigDict(populate_by_name=True)

    session_id: str = Field(..., min_length=1, validation_alias=AliasChoices("sessionId", "session_id"))
    therapist_id: Optional[int] = Field(None, validation_alias=AliasChoices("therapistId", "therapist_id"))
    patient_id: Optional[int] = Field(None, validation_alias=AliasChoices("patientId", "patient_id"))
    organization_id: Optional[int] = Field(
        None, validation_alias=AliasChoices("organizationId", "organization_id")
    )
    appointment_id: Optional[int] = Field(
        None, validation_alias=AliasChoices("appointmentId", "appointment_id")
    )

    def to_request(self) -> FinalizeRequest:
        return FinalizeRequest(
            session_id=self.session_id,
            therapist_id=self.therapist_id,
            patient_id=self.patient_id,
            organization_id=self.organization_id,
            appointment_id=self.appointment_id,
        )


class FinalizeOut(BaseModel):
    session_id: str
    consolidated_key: str
    summary_count: int
    final_segment_index: Optional[int] = None
    finalizer_result: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_result(cls, result: FinalizeResult) -> "FinalizeOut":
        return cls(
            session_id=result.session_id,
            consolidated_key=result.consolidated_key,
            summary_count=result.summary_count,
            final_segment_index=result.final_segment_index,
            finalizer_result=result.finalizer_result,
        )
