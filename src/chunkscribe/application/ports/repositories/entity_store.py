"""
Entity store interface for sessions, chunks and segments.
"""

from typing import Any, Dict, Iterable, List, Optional

from chunkscribe.domain.entities.chunk import Chunk
from chunkscribe.domain.entities.segment import Segment
from chunkscribe.domain.entities.session import Session
from chunkscribe.domain.enums.status import ChunkStatus


class EntityStore:
    """Repository interface for the pipeline's three record types.

    Records handed out are detached copies; mutate state only through the
    update methods. No business rules live here.
    """

    # Sessions

    async def get_session(self, session_id: str) -> Optional[Session]:
        """Find a session by ID."""
        raise NotImplementedError

    async def create_session_if_absent(self, session: Session) -> bool:
        """Insert the session unless one exists; True when this call created it."""
        raise NotImplementedError

    async def update_session(self, session_id: str, changes: Dict[str, Any]) -> Session:
        """Apply field changes and bump the version. Raises SessionNotFoundError."""
        raise NotImplementedError

    async def commit_rolling_state(
        self,
        session_id: str,
        expected_version: int,
        changes: Dict[str, Any],
        new_segment: Optional[Segment] = None,
    ) -> bool:
        """Atomically apply rolling-state changes (and insert the cut segment)
        only if the stored version still equals ``expected_version``.

        Returns False on a version conflict, leaving nothing written.
        """
        raise NotImplementedError

    # Chunks

    async def get_chunk(self, session_id: str, seq: int) -> Optional[Chunk]:
        """Find a chunk by (session_id, seq)."""
        raise NotImplementedError

    async def create_chunk_if_absent(self, chunk: Chunk) -> bool:
        """Insert the chunk unless its key exists; True when this call created it."""
        raise NotImplementedError

    async def update_chunk(
        self,
        session_id: str,
        seq: int,
        changes: Dict[str, Any],
        expected_status: Optional[Iterable[ChunkStatus]] = None,
    ) -> Optional[Chunk]:
        """Apply field changes to a chunk.

        With ``expected_status`` the update is conditional on the current
        status and returns None when it does not match. Raises
        ChunkNotFoundError for an unknown key.
        """
        raise NotImplementedError

    async def list_chunks(self, session_id: str) -> List[Chunk]:
        """All chunks of a session ordered by seq."""
        raise NotImplementedError

    # Segments

    async def get_segment(self, session_id: str, segment_index: int) -> Optional[Segment]:
        """Find a segment by (session_id, segment_index)."""
        raise NotImplementedError

    async def update_segment(
        self, session_id: str, segment_index: int, changes: Dict[str, Any]
    ) -> Segment:
        """Apply field changes to a segment. Raises SegmentNotFoundError."""
        raise NotImplementedError

    async def list_segments(self, session_id: str) -> List[Segment]:
        """All segments of a session ordered by index."""
        raise NotImplementedError
