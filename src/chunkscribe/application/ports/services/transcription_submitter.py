"""
Remote transcription submission interface.
"""

from abc import ABC, abstractmethod

from ...dto.chunk_dto import ChunkJob


class TranscriptionSubmitter(ABC):
    """Submits one chunk to the asynchronous remote transcriber."""

    @abstractmethod
    async def submit(self, job: ChunkJob, audio_url: str, webhook_url: str) -> str:
        """Start a remote job; returns the remote job ID.

        Results arrive later on ``webhook_url``.
        """
        pass
