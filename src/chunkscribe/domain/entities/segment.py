"""Segment entity: one cut of a session's rolling transcript."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Tuple

from ..enums.status import SegmentStatus


@dataclass
class Segment:
    """Bounded slice of merged transcript handed to the summarizer.

    ``start_ms``/``end_ms`` are reserved; the merge path does not fill them.
    """

    session_id: str
    segment_index: int
    token_count: int = 0
    status: SegmentStatus = SegmentStatus.PENDING
    summary_key: Optional[str] = None
    start_ms: Optional[int] = None
    end_ms: Optional[int] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    @property
    def key(self) -> Tuple[str, int]:
        return (self.session_id, self.segment_index)
