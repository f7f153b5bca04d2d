"""
In-process entity store.

Used for tests and single-process deployments. Records are deep-copied on
the way in and out so callers never share state with the store.
"""

import copy
from dataclasses import fields
from datetime import datetime
from threading import RLock
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ....application.ports.repositories.entity_store import EntityStore
from ....domain.entities.chunk import Chunk
from ....domain.entities.segment import Segment
from ....domain.entities.session import Session
from ....domain.enums.status import ChunkStatus
from ....domain.errors import (
    ChunkNotFoundError,
    DuplicateSegmentError,
    SegmentNotFoundError,
    SessionNotFoundError,
)


def _apply(record: Any, changes: Dict[str, Any]) -> None:
    allowed = {f.name for f in fields(record)}
    unknown = set(changes) - allowed
    if unknown:
        raise ValueError(f"Unknown fields for {type(record).__name__}: {sorted(unknown)}")
    for name, value in changes.items():
        setattr(record, name, value)
    record.updated_at = datetime.utcnow()


class InMemoryEntityStore(EntityStore):
    def __init__(self):
        self._lock = RLock()
        self._sessions: Dict[str, Session] = {}
        self._chunks: Dict[Tuple[str, int], Chunk] = {}
        self._segments: Dict[Tuple[str, int], Segment] = {}

    # Sessions

    async def get_session(self, session_id: str) -> Optional[Session]:
        with self._lock:
            return copy.deepcopy(self._sessions.get(session_id))

    async def create_session_if_absent(self, session: Session) -> bool:
        with self._lock:
            if session.session_id in self._sessions:
                return False
            self._sessions[session.session_id] = copy.deepcopy(session)
            return True

    async def update_session(self, session_id: str, changes: Dict[str, Any]) -> Session:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            _apply(session, {k: v for k, v in changes.items() if k != "version"})
            session.version += 1
            return copy.deepcopy(session)

    async def commit_rolling_state(
        self,
        session_id: str,
        expected_version: int,
        changes: Dict[str, Any],
        new_segment: Optional[Segment] = None,
    ) -> bool:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFoundError(session_id)
            if session.version != expected_version:
                return False
            if new_segment is not None and new_segment.key in self._segments:
                raise DuplicateSegmentError(session_id, new_segment.segment_index)
            _apply(session, {k: v for k, v in changes.items() if k != "version"})
            session.version += 1
            if new_segment is not None:
                self._segments[new_segment.key] = copy.deepcopy(new_segment)
            return True

    # Chunks

    async def get_chunk(self, session_id: str, seq: int) -> Optional[Chunk]:
        with self._lock:
            return copy.deepcopy(self._chunks.get((session_id, seq)))

    async def create_chunk_if_absent(self, chunk: Chunk) -> bool:
        with self._lock:
            if chunk.key in self._chunks:
                return False
            self._chunks[chunk.key] = copy.deepcopy(chunk)
            return True

    async def update_chunk(
        self,
        session_id: str,
        seq: int,
        changes: Dict[str, Any],
        expected_status: Optional[Iterable[ChunkStatus]] = None,
    ) -> Optional[Chunk]:
        with self._lock:
            chunk = self._chunks.get((session_id, seq))
            if chunk is None:
                raise ChunkNotFoundError(session_id, seq)
            if expected_status is not None and chunk.status not in set(expected_status):
                return None
            _apply(chunk, changes)
            return copy.deepcopy(chunk)

    async def list_chunks(self, session_id: str) -> List[Chunk]:
        with self._lock:
            chunks = [c for (sid, _), c in self._chunks.items() if sid == session_id]
            return [copy.deepcopy(c) for c in sorted(chunks, key=lambda c: c.seq)]

    # Segments

    async def get_segment(self, session_id: str, segment_index: int) -> Optional[Segment]:
        with self._lock:
            return copy.deepcopy(self._segments.get((session_id, segment_index)))

    async def update_segment(
        self, session_id: str, segment_index: int, changes: Dict[str, Any]
    ) -> Segment:
        with self._lock:
            segment = self._segments.get((session_id, segment_index))
            if segment is None:
                raise SegmentNotFoundError(session_id, segment_index)
            _apply(segment, changes)
            return copy.deepcopy(segment)

    async def list_segments(self, session_id: str) -> List[Segment]:
        with self._lock:
            segments = [s for (sid, _), s in self._segments.items() if sid == session_id]
            return [copy.deepcopy(s) for s in sorted(segments, key=lambda s: s.segment_index)]
