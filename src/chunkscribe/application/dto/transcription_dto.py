"""
Transcription result and callback DTOs.

The remote worker reports either a flat ``words`` list, a ``segments`` list
whose items may carry their own ``words``, or both.
"""

import json
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from ...domain.errors import MalformedTranscriptionResultError


class TranscribedWord(BaseModel):
    """One timestamped word, times relative to the chunk start (seconds)."""

    model_config = ConfigDict(extra="ignore")

    word: str = Field(default="", validation_alias=AliasChoices("word", "text"))
    start: Optional[float] = None
    end: Optional[float] = None
    probability: Optional[float] = None


class TranscribedSegment(BaseModel):
    """Text span of a transcription result, optionally with word timings."""

    model_config = ConfigDict(extra="ignore")

    text: str = ""
    start: Optional[float] = None
    end: Optional[float] = None
    words: Optional[List[TranscribedWord]] = None


class TranscriptionResult(BaseModel):
    """Raw result of transcribing one chunk."""

    model_config = ConfigDict(extra="allow")

    segments: List[TranscribedSegment] = Field(default_factory=list)
    words: Optional[List[TranscribedWord]] = Field(
        default=None, validation_alias=AliasChoices("words", "word_timestamps")
    )
    language: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("language", "detected_language")
    )

    @classmethod
    def from_payload(cls, payload: Any) -> "TranscriptionResult":
        """Validate a callback payload, raising the domain error on bad shapes."""
        if isinstance(payload, (str, bytes)):
            try:
                payload = json.loads(payload)
            except ValueError as e:
                raise MalformedTranscriptionResultError("payload is not JSON") from e
        if not isinstance(payload, dict):
            raise MalformedTranscriptionResultError(
                "payload is not an object", {"type": type(payload).__name__}
            )
        if not any(k in payload for k in ("segments", "words", "word_timestamps")):
            raise MalformedTranscriptionResultError(
                "payload has neither segments nor words", {"keys": sorted(payload)[:20]}
            )
        try:
            return cls.model_validate(payload)
        except ValidationError as e:
            raise MalformedTranscriptionResultError(
                "payload failed validation", {"errors": [err["msg"] for err in e.errors()[:5]]}
            ) from e

    def to_json_bytes(self) -> bytes:
        return self.model_dump_json(by_alias=False, exclude_none=True).encode("utf-8")


class TranscriptionCallback(BaseModel):
    """Status notification from the remote transcriber, correlated by session and seq."""

    session_id: str
    seq: int = Field(ge=0)
    status: str = ""
    start_ms: Optional[int] = Field(default=None, ge=0)
    end_ms: Optional[int] = Field(default=None, ge=0)
    audio_key: Optional[str] = None
    remote_job_id: Optional[str] = None
    output: Optional[Any] = None
    error: Optional[str] = None
    raw_body: Dict[str, Any] = Field(default_factory=dict)

    @property
    def normalized_status(self) -> str:
        return (self.status or "").strip().upper()

    @property
    def result_payload(self) -> Any:
        """Result object of a success callback; some workers inline it in the body."""
        return self.output if self.output is not None else self.raw_body
