"""
Response envelopes shared by every route.

Successful calls return ``ApiResponse[T]``; failures turned into responses by
the app's exception handlers return ``ErrorResponse``. Both echo the request
id stamped by the request-id middleware.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


def _utc_now_iso() -> str:
    return datetime.utcnow().isoformat()


def _new_request_id() -> str:
    return str(uuid.uuid4())


class ApiResponse(BaseModel, Generic[T]):
    """Success envelope around a route's payload."""

    success: bool = Field(True, description="Operation success status")
    message: str = Field("", description="Short outcome, e.g. enqueued, duplicate, ignored")
    timestamp: str = Field(default_factory=_utc_now_iso, description="Response timestamp (UTC)")
    request_id: str = Field(default_factory=_new_request_id, description="Request ID for tracking")
    data: Optional[T] = Field(None, description="Response payload")


class ErrorResponse(BaseModel):
    """Error envelope. ``details`` names the session, seq or segment and the stage."""

    success: bool = Field(False, description="Operation success status")
    error: str = Field(..., description="Error code, e.g. SESSION_NOT_FOUND or SUMMARIZER_ERROR")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Identifiers of the failing operation")
    timestamp: str = Field(default_factory=_utc_now_iso, description="Error timestamp (UTC)")
    request_id: str = Field(default_factory=_new_request_id, description="Request ID for tracking")
