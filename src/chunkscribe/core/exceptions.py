"""
Exception handling for chunkscribe.

This module provides custom exception classes for the infrastructure
layers (configuration, storage, queue and external services).
"""

from typing import Any, Dict, Optional


class ChunkscribeException(Exception):
    """Base exception class for chunkscribe."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(ChunkscribeException):
    """Raised when there's a configuration error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, "CONFIG_ERROR", details)


class DatabaseError(ChunkscribeException):
    """Raised when there's an entity store operation error."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message, "DATABASE_ERROR", details)


class ExternalServiceError(ChunkscribeException):
    """Raised when there's an external service error."""

    def __init__(
        self, service: str, message: str, details: Optional[Dict[str, Any]] = None
    ) -> None:
        self.service = service
        full_message = f"{service} service error: {message}"
        super().__init__(full_message, "EXTERNAL_SERVICE_ERROR", details)


class StorageError(ExternalServiceError):
    """Raised when an object storage operation fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__("ObjectStorage", message, details)
        self.error_code = "STORAGE_ERROR"


class QueueError(ExternalServiceError):
    """Raised when a work queue operation fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__("WorkQueue", message, details)
        self.error_code = "QUEUE_ERROR"


class TranscriptionSubmitError(ExternalServiceError):
    """Raised when the remote transcriber rejects or drops a submission."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__("Transcriber", message, details)
        self.error_code = "TRANSCRIPTION_SUBMIT_ERROR"


class SummarizerError(ExternalServiceError):
    """Raised when the summarizer or finalizer function call fails."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__("Summarizer", message, details)
        self.error_code = "SUMMARIZER_ERROR"
