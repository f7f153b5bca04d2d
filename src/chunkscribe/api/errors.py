"""
HTTP-level errors raised by route handlers before a use case runs.
"""

from typing import Any, Dict, Optional


class APIError(Exception):
    """Error that carries its own error code and HTTP status."""

    def __init__(self, code: str, message: str, http_status: int = 400, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.http_status = http_status
        self.details = details or {}


class InvalidUploadError(APIError):
    """Multipart upload that cannot become a chunk."""

    def __init__(self, message: str, session_id: str, seq: int):
        super().__init__(
            "INVALID_INPUT", message, 422, {"session_id": session_id, "seq": seq, "stage": "upload"}
        )
