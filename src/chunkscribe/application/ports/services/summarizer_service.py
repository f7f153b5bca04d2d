"""
Summarizer and finalizer function interface.
"""

from abc import ABC, abstractmethod

from chunkscribe.domain.entities.session import Session


class SummarizerService(ABC):
    """External functions that summarize segments and finalize sessions.

    Both return the raw reply body; callers decide how to parse it.
    """

    @abstractmethod
    async def summarize_segment(self, session: Session, segment_index: int, text: str) -> str:
        """Summarize one segment's input text."""
        pass

    @abstractmethod
    async def finalize(self, session: Session, consolidated_key: str, container: str) -> str:
        """Produce the session-level result from the consolidated summaries."""
        pass
