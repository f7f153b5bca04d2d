"""Session entity: one per recording, owner of the rolling transcript state."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..enums.status import SessionStatus

BUSINESS_ID_FIELDS = ("therapist_id", "patient_id", "organization_id", "appointment_id")


@dataclass
class Session:
    """Recording session and its not-yet-segmented transcript buffer.

    ``rolling_text`` and ``rolling_token_count`` hold merged text since the
    last cut. ``last_kept_end_seconds`` is the dedup watermark in seconds
    since session start. ``merged_seqs`` lists the chunks already folded
    into the transcript and changes only together with the rolling state.
    ``version`` increases on every rolling-state commit and is the
    compare-and-swap token for concurrent chunk completions.
    """

    session_id: str
    status: SessionStatus = SessionStatus.RECORDING
    therapist_id: Optional[int] = None
    patient_id: Optional[int] = None
    organization_id: Optional[int] = None
    appointment_id: Optional[int] = None
    rolling_text: str = ""
    rolling_token_count: int = 0
    next_segment_index: int = 0
    last_kept_end_seconds: float = 0.0
    merged_seqs: List[int] = field(default_factory=list)
    end_requested: bool = False
    version: int = 0
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def __post_init__(self) -> None:
        if not self.session_id or not str(self.session_id).strip():
            raise ValueError("Session ID cannot be empty")

    @property
    def accepts_chunks(self) -> bool:
        """Whether chunk completions still feed the rolling transcript."""
        return not self.end_requested

    @property
    def has_rolling_text(self) -> bool:
        return bool(self.rolling_text.strip())

    def business_ids(self) -> Dict[str, Optional[int]]:
        return {name: getattr(self, name) for name in BUSINESS_ID_FIELDS}


def identifier_changes(**identifiers: Any) -> Dict[str, int]:
    """Keep only the business identifiers that were actually supplied."""
    return {
        name: int(value)
        for name, value in identifiers.items()
        if name in BUSINESS_ID_FIELDS and value is not None
    }
