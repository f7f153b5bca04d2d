"""
MongoDB entity store (beanie documents on a motor client).

Rolling-state commits run in a multi-document transaction, so the deployment
must be a replica set (Atlas clusters are).
"""

import logging
from dataclasses import asdict, fields
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

import certifi
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

from ....application.ports.repositories.entity_store import EntityStore
from ....core.config import DatabaseSettings
from ....core.exceptions import ConfigurationError
from ....domain.entities.chunk import Chunk
from ....domain.entities.segment import Segment
from ....domain.entities.session import Session
from ....domain.enums.status import ChunkStatus, SegmentStatus, SessionStatus
from ....domain.errors import (
    ChunkNotFoundError,
    DuplicateSegmentError,
    SegmentNotFoundError,
    SessionNotFoundError,
)
from .models.pipeline_m import DOCUMENT_MODELS, ChunkMongo, SegmentMongo, SessionMongo

logger = logging.getLogger(__name__)


def create_motor_client(settings: DatabaseSettings) -> AsyncIOMotorClient:
    """Motor client; TLS with the certifi bundle only for Atlas SRV URIs."""
    if not settings.uri:
        raise ConfigurationError("MongoDB URI is required. Please set MONGO_URI environment variable.")
    if settings.uri.startswith("mongodb+srv://"):
        return AsyncIOMotorClient(
            settings.uri,
            serverSelectionTimeoutMS=settings.server_selection_timeout_ms,
            tls=True,
            tlsCAFile=certifi.where(),
            tlsAllowInvalidCertificates=False,
        )
    return AsyncIOMotorClient(
        settings.uri,
        serverSelectionTimeoutMS=settings.server_selection_timeout_ms,
    )


def _to_mongo(changes: Dict[str, Any]) -> Dict[str, Any]:
    return {k: (v.value if isinstance(v, Enum) else v) for k, v in changes.items() if k != "version"}


def _pick(data: Dict[str, Any], entity_type) -> Dict[str, Any]:
    names = {f.name for f in fields(entity_type)}
    return {k: v for k, v in data.items() if k in names}


def _session_from(data: Dict[str, Any]) -> Session:
    values = _pick(data, Session)
    values["status"] = SessionStatus(values.get("status", SessionStatus.RECORDING.value))
    return Session(**values)


def _chunk_from(data: Dict[str, Any]) -> Chunk:
    values = _pick(data, Chunk)
    values["status"] = ChunkStatus(values.get("status", ChunkStatus.UPLOADED.value))
    return Chunk(**values)


def _segment_from(data: Dict[str, Any]) -> Segment:
    values = _pick(data, Segment)
    values["status"] = SegmentStatus(values.get("status", SegmentStatus.PENDING.value))
    return Segment(**values)


class MongoEntityStore(EntityStore):
    """MongoDB implementation of the entity store."""

    def __init__(self, client: AsyncIOMotorClient, db_name: str):
        self._client = client
        self._db = client[db_name]

    async def initialize(self) -> None:
        """Register document models and create indexes."""
        await init_beanie(database=self._db, document_models=DOCUMENT_MODELS)
        logger.info("✅ MongoDB entity store initialized")

    async def ping(self) -> None:
        await self._client.admin.command("ping")

    @property
    def _sessions(self):
        return self._db[SessionMongo.Settings.name]

    @property
    def _chunks(self):
        return self._db[ChunkMongo.Settings.name]

    @property
    def _segments(self):
        return self._db[SegmentMongo.Settings.name]

    # Sessions

    async def get_session(self, session_id: str) -> Optional[Session]:
        doc = await SessionMongo.find_one(SessionMongo.session_id == session_id)
        return _session_from(doc.model_dump()) if doc else None

    async def create_session_if_absent(self, session: Session) -> bool:
        try:
            await SessionMongo(**_to_mongo(asdict(session)), version=session.version).insert()
            return True
        except DuplicateKeyError:
            return False

    async def update_session(self, session_id: str, changes: Dict[str, Any]) -> Session:
        raw = await self._sessions.find_one_and_update(
            {"session_id": session_id},
            {"$set": {**_to_mongo(changes), "updated_at": datetime.utcnow()}, "$inc": {"version": 1}},
            return_document=ReturnDocument.AFTER,
        )
        if raw is None:
            raise SessionNotFoundError(session_id)
        return _session_from(raw)

    async def commit_rolling_state(
        self,
        session_id: str,
        expected_version: int,
        changes: Dict[str, Any],
        new_segment: Optional[Segment] = None,
    ) -> bool:
        async with await self._client.start_session() as db_session:
            async with db_session.start_transaction():
                raw = await self._sessions.find_one_and_update(
                    {"session_id": session_id, "version": expected_version},
                    {"$set": {**_to_mongo(changes), "updated_at": datetime.utcnow()}, "$inc": {"version": 1}},
                    session=db_session,
                )
                if raw is None:
                    exists = await self._sessions.count_documents(
                        {"session_id": session_id}, session=db_session
                    )
                    await db_session.abort_transaction()
                    if not exists:
                        raise SessionNotFoundError(session_id)
                    return False

                if new_segment is not None:
                    try:
                        await self._segments.insert_one(
                            _to_mongo(asdict(new_segment)), session=db_session
                        )
                    except DuplicateKeyError as e:
                        raise DuplicateSegmentError(session_id, new_segment.segment_index) from e
        return True

    # Chunks

    async def get_chunk(self, session_id: str, seq: int) -> Optional[Chunk]:
        doc = await ChunkMongo.find_one(ChunkMongo.session_id == session_id, ChunkMongo.seq == seq)
        return _chunk_from(doc.model_dump()) if doc else None

    async def create_chunk_if_absent(self, chunk: Chunk) -> bool:
        try:
            await ChunkMongo(**_to_mongo(asdict(chunk))).insert()
            return True
        except DuplicateKeyError:
            return False

    async def update_chunk(
        self,
        session_id: str,
        seq: int,
        changes: Dict[str, Any],
        expected_status: Optional[Iterable[ChunkStatus]] = None,
    ) -> Optional[Chunk]:
        query: Dict[str, Any] = {"session_id": session_id, "seq": seq}
        if expected_status is not None:
            query["status"] = {"$in": [ChunkStatus(s).value for s in expected_status]}

        raw = await self._chunks.find_one_and_update(
            query,
            {"$set": {**_to_mongo(changes), "updated_at": datetime.utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if raw is not None:
            return _chunk_from(raw)
        if await self._chunks.count_documents({"session_id": session_id, "seq": seq}) == 0:
            raise ChunkNotFoundError(session_id, seq)
        return None

    async def list_chunks(self, session_id: str) -> List[Chunk]:
        docs = await ChunkMongo.find(ChunkMongo.session_id == session_id).sort("+seq").to_list()
        return [_chunk_from(doc.model_dump()) for doc in docs]

    # Segments

    async def get_segment(self, session_id: str, segment_index: int) -> Optional[Segment]:
        doc = await SegmentMongo.find_one(
            SegmentMongo.session_id == session_id, SegmentMongo.segment_index == segment_index
        )
        return _segment_from(doc.model_dump()) if doc else None

    async def update_segment(
        self, session_id: str, segment_index: int, changes: Dict[str, Any]
    ) -> Segment:
        raw = await self._segments.find_one_and_update(
            {"session_id": session_id, "segment_index": segment_index},
            {"$set": {**_to_mongo(changes), "updated_at": datetime.utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if raw is None:
            raise SegmentNotFoundError(session_id, segment_index)
        return _segment_from(raw)

    async def list_segments(self, session_id: str) -> List[Segment]:
        docs = (
            await SegmentMongo.find(SegmentMongo.session_id == session_id)
            .sort("+segment_index")
            .to_list()
        )
        return [_segment_from(doc.model_dump()) for doc in docs]
