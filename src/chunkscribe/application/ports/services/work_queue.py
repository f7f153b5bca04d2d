"""
Work queue interface for chunk transcription jobs.
"""

from abc import ABC, abstractmethod
from typing import List

from ...dto.chunk_dto import ChunkJob, QueueMessage


class WorkQueue(ABC):
    """At-least-once queue with consumer-side acknowledgement."""

    @abstractmethod
    async def enqueue(self, job: ChunkJob) -> str:
        """Publish a job; returns the message ID."""
        pass

    @abstractmethod
    async def receive(self, max_messages: int = 1) -> List[QueueMessage]:
        """Receive up to ``max_messages`` jobs, hidden until acked or expired."""
        pass

    @abstractmethod
    async def ack(self, message: QueueMessage) -> None:
        """Remove a processed message."""
        pass

    @abstractmethod
    async def nack(self, message: QueueMessage) -> None:
        """Reject a message without redelivery."""
        pass
