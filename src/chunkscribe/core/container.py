"""
Dependency injection container for chunkscribe.

This module provides a lightweight dependency injection container that
wires storage adapters, external services and use cases from settings.
"""

import logging
from typing import Any, Callable, Dict, Optional

from .config import Settings, get_settings
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ENTITY_STORE = "entity_store"
OBJECT_STORAGE = "object_storage"
WORK_QUEUE = "work_queue"
TRANSCRIPTION_SUBMITTER = "transcription_submitter"
SUMMARIZER_SERVICE = "summarizer_service"
SEGMENT_SUMMARIZER = "segment_summarizer"
SESSION_ORCHESTRATOR = "session_orchestrator"
CHUNK_DISPATCHER = "chunk_dispatcher"
CALLBACK_INGESTOR = "callback_ingestor"
FINALIZE_SESSION = "finalize_session"
SESSION_QUERIES = "session_queries"


class Container:
    """Lightweight dependency injection container."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._services: Dict[str, Any] = {}
        self._factories: Dict[str, Callable[[], Any]] = {}
        self._singletons: Dict[str, Any] = {}
        self.settings = settings or get_settings()

    def register_singleton(self, name: str, instance: Any) -> None:
        """Register a singleton instance."""
        self._singletons[name] = instance

    def register_factory(self, name: str, factory: Callable[[], Any]) -> None:
        """Register a factory function."""
        self._factories[name] = factory

    def get(self, name: str) -> Any:
        """Get a service by name."""
        if name in self._singletons:
            return self._singletons[name]

        if name in self._factories:
            instance = self._factories[name]()
            # Factories are built once and cached
            self._singletons[name] = instance
            return instance

        raise ConfigurationError(f"Service '{name}' not found")

    def get_or_none(self, name: str) -> Optional[Any]:
        """Get a service by name, return None if not found."""
        try:
            return self.get(name)
        except ConfigurationError:
            return None

    def has(self, name: str) -> bool:
        """Check if a service is registered."""
        return name in self._factories or name in self._singletons

    async def startup(self) -> None:
        """Connect the entity store and make sure the container and queues exist.

        Missing Azure configuration is logged, not fatal, so the API can come
        up for local work; the first storage or queue call then fails.
        """
        store = self.get(ENTITY_STORE)
        if hasattr(store, "initialize"):
            await store.initialize()

        storage = self.get(OBJECT_STORAGE)
        queue = self.get(WORK_QUEUE)
        try:
            if hasattr(storage, "ensure_container_exists"):
                await storage.ensure_container_exists()
            if hasattr(queue, "ensure_queue_exists"):
                await queue.ensure_queue_exists()
        except ConfigurationError as e:
            logger.warning(f"⚠️  Azure Storage not configured: {e.message}")


def _build_entity_store(settings: Settings):
    if settings.database.backend == "mongo":
        from ..adapters.db.mongo.entity_store import MongoEntityStore, create_motor_client

        client = create_motor_client(settings.database)
        return MongoEntityStore(client, settings.database.db_name)

    from ..adapters.db.memory.entity_store import InMemoryEntityStore

    logger.warning("Using in-memory entity store; state is lost on restart")
    return InMemoryEntityStore()


def build_container(settings: Optional[Settings] = None, **overrides: Any) -> Container:
    """Wire the default adapters and use cases.

    Any service name may be overridden with a ready instance, which is how
    tests swap in fakes for the Azure and HTTP adapters.
    """
    from ..adapters.external.summarizer_service_http import HttpSummarizerService
    from ..adapters.external.transcription_service_runpod import RunPodTranscriptionSubmitter
    from ..adapters.queue.azure_queue_service import AzureQueueWorkQueue
    from ..adapters.storage.azure_blob_service import AzureBlobObjectStorage
    from ..application.use_cases.dispatch_chunk import ChunkDispatcher
    from ..application.use_cases.finalize_session import FinalizeSession
    from ..application.use_cases.ingest_callback import CallbackIngestor
    from ..application.use_cases.session_orchestrator import SessionOrchestrator
    from ..application.use_cases.session_queries import SessionQueries
    from ..application.use_cases.summarize_segment import SegmentSummarizer

    container = Container(settings)
    s = container.settings

    container.register_factory(ENTITY_STORE, lambda: _build_entity_store(s))
    container.register_factory(OBJECT_STORAGE, lambda: AzureBlobObjectStorage(s.azure_blob))
    container.register_factory(WORK_QUEUE, lambda: AzureQueueWorkQueue(s.azure_queue))
    container.register_factory(TRANSCRIPTION_SUBMITTER, lambda: RunPodTranscriptionSubmitter(s.transcriber))
    container.register_factory(SUMMARIZER_SERVICE, lambda: HttpSummarizerService(s.summarizer))

    container.register_factory(
        SEGMENT_SUMMARIZER,
        lambda: SegmentSummarizer(
            container.get(ENTITY_STORE),
            container.get(OBJECT_STORAGE),
            container.get(SUMMARIZER_SERVICE),
            timeout_seconds=s.summarizer.timeout_seconds,
        ),
    )
    container.register_factory(
        SESSION_ORCHESTRATOR,
        lambda: SessionOrchestrator(
            container.get(ENTITY_STORE),
            container.get(OBJECT_STORAGE),
            container.get(SEGMENT_SUMMARIZER),
            token_threshold=s.segmentation.token_threshold,
            watermark_epsilon=s.segmentation.watermark_epsilon_seconds,
            max_commit_retries=s.segmentation.max_commit_retries,
            commit_backoff_seconds=s.segmentation.commit_backoff_seconds,
        ),
    )
    container.register_factory(
        CHUNK_DISPATCHER,
        lambda: ChunkDispatcher(
            container.get(ENTITY_STORE), container.get(OBJECT_STORAGE), container.get(WORK_QUEUE)
        ),
    )
    container.register_factory(
        CALLBACK_INGESTOR,
        lambda: CallbackIngestor(container.get(ENTITY_STORE), container.get(SESSION_ORCHESTRATOR)),
    )
    container.register_factory(
        FINALIZE_SESSION,
        lambda: FinalizeSession(
            container.get(ENTITY_STORE),
            container.get(OBJECT_STORAGE),
            container.get(SESSION_ORCHESTRATOR),
            container.get(SUMMARIZER_SERVICE),
            timeout_seconds=s.summarizer.timeout_seconds,
        ),
    )
    container.register_factory(SESSION_QUERIES, lambda: SessionQueries(container.get(ENTITY_STORE)))

    for name, instance in overrides.items():
        container.register_singleton(name, instance)
    return container
