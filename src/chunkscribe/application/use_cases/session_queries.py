"""Read-side queries for reporting UIs."""

import math
from typing import List

from ...domain.entities.chunk import Chunk
from ...domain.entities.segment import Segment
from ...domain.entities.session import Session
from ...domain.enums.status import ChunkStatus
from ...domain.errors import SessionNotFoundError
from ..dto.session_dto import SessionProgress
from ..ports.repositories.entity_store import EntityStore


class SessionQueries:
    def __init__(self, entity_store: EntityStore):
        self._entity_store = entity_store

    async def get_session(self, session_id: str) -> Session:
        session = await self._entity_store.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def list_chunks(self, session_id: str) -> List[Chunk]:
        await self.get_session(session_id)
        return await self._entity_store.list_chunks(session_id)

    async def list_segments(self, session_id: str) -> List[Segment]:
        await self.get_session(session_id)
        return await self._entity_store.list_segments(session_id)

    async def progress(self, session_id: str) -> SessionProgress:
        """Succeeded and failed chunk counts over the total, percent to one decimal."""
        session = await self.get_session(session_id)
        chunks = await self._entity_store.list_chunks(session_id)
        total = len(chunks)
        done = sum(1 for c in chunks if c.status == ChunkStatus.SUCCEEDED)
        failed = sum(1 for c in chunks if c.status.is_failure)
        pct = math.floor(done / total * 1000 + 0.5) / 10 if total else 0.0
        return SessionProgress(session=session, total=total, done=done, failed=failed, pct=pct)
