"""FastAPI dependency providers backed by the application container."""

from fastapi import Request

from ..application.use_cases.dispatch_chunk import ChunkDispatcher
from ..application.use_cases.finalize_session import FinalizeSession
from ..application.use_cases.ingest_callback import CallbackIngestor
from ..application.use_cases.session_queries import SessionQueries
from ..core.container import (
    CALLBACK_INGESTOR,
    CHUNK_DISPATCHER,
    FINALIZE_SESSION,
    SESSION_QUERIES,
    Container,
    build_container,
)


def get_container(request: Request) -> Container:
    container = getattr(request.app.state, "container", None)
    if container is None:
        # Routes hit before lifespan ran (e.g. TestClient without context manager)
        container = build_container()
        request.app.state.container = container
    return container


def get_chunk_dispatcher(request: Request) -> ChunkDispatcher:
    return get_container(request).get(CHUNK_DISPATCHER)


def get_callback_ingestor(request: Request) -> CallbackIngestor:
    return get_container(request).get(CALLBACK_INGESTOR)


def get_finalize_session(request: Request) -> FinalizeSession:
    return get_container(request).get(FINALIZE_SESSION)


def get_session_queries(request: Request) -> SessionQueries:
    return get_container(request).get(SESSION_QUERIES)
