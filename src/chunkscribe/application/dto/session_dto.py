"""
Session read-model and finalize DTOs.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from ...domain.entities.session import Session, identifier_changes


@dataclass
class FinalizeRequest:
    session_id: str
    therapist_id: Optional[int] = None
    patient_id: Optional[int] = None
    organization_id: Optional[int] = None
    appointment_id: Optional[int] = None

    def identifiers(self) -> Dict[str, int]:
        return identifier_changes(
            therapist_id=self.therapist_id,
            patient_id=self.patient_id,
            organization_id=self.organization_id,
            appointment_id=self.appointment_id,
        )


@dataclass
class FinalizeResult:
    session_id: str
    consolidated_key: str
    summary_count: int
    final_segment_index: Optional[int] = None
    finalizer_result: Dict[str, Any] = field(default_factory=dict)


@dataclass
class SessionProgress:
    session: Session
    total: int
    done: int
    failed: int
    pct: float
