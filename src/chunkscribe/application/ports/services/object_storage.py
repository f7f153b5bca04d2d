"""
Object storage interface for audio, transcripts and summaries.
"""

from abc import ABC, abstractmethod


class ObjectStorage(ABC):
    """Abstract key/blob store. Writes to an existing key overwrite it."""

    @property
    @abstractmethod
    def container(self) -> str:
        """Name of the bucket/container the keys live in."""
        pass

    @abstractmethod
    async def put(self, key: str, data: bytes, content_type: str) -> None:
        """Store ``data`` under ``key``."""
        pass

    @abstractmethod
    async def get(self, key: str) -> bytes:
        """Read an object. Raises FileNotFoundError for a missing key."""
        pass

    @abstractmethod
    async def presigned_get_url(self, key: str, ttl_seconds: int) -> str:
        """Time-limited read URL for an external worker."""
        pass
