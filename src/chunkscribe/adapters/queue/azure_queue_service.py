"""
Azure Queue Storage work queue for chunk transcription jobs.
"""

import asyncio
import json
import logging
from typing import List, Optional

from azure.core.exceptions import AzureError, ResourceExistsError
from azure.storage.queue import QueueClient, QueueServiceClient

from ...application.dto.chunk_dto import ChunkJob, QueueMessage
from ...application.ports.services.work_queue import WorkQueue
from ...core.config import AzureQueueSettings
from ...core.exceptions import ConfigurationError, QueueError
from ...core.utils.blocking import run_blocking

logger = logging.getLogger(__name__)


class AzureQueueWorkQueue(WorkQueue):
    """Azure Queue Storage implementation of the work queue.

    Messages that cannot be processed are copied to ``<queue>-poison`` before
    being deleted, mirroring the Functions host convention.
    """

    def __init__(self, settings: AzureQueueSettings):
        self.settings = settings
        self._service: Optional[QueueServiceClient] = None
        self._queue_client: Optional[QueueClient] = None
        self._poison_client: Optional[QueueClient] = None

    @property
    def service(self) -> QueueServiceClient:
        if self._service is None:
            if not self.settings.connection_string:
                raise ConfigurationError(
                    "Azure Queue Storage connection string is required. "
                    "Set AZURE_QUEUE_CONNECTION_STRING or AZURE_BLOB_CONNECTION_STRING"
                )
            self._service = QueueServiceClient.from_connection_string(self.settings.connection_string)
        return self._service

    @property
    def queue_client(self) -> QueueClient:
        """Get or create QueueClient."""
        if self._queue_client is None:
            self._queue_client = self.service.get_queue_client(self.settings.queue_name)
            logger.info(f"✅ Azure Queue Storage client initialized for queue: {self.settings.queue_name}")
        return self._queue_client

    @property
    def poison_client(self) -> QueueClient:
        if self._poison_client is None:
            self._poison_client = self.service.get_queue_client(self.settings.poison_queue_name)
        return self._poison_client

    async def ensure_queue_exists(self) -> bool:
        """Ensure the work and poison queues exist (non-blocking)."""
        ok = True
        for client in (self.queue_client, self.poison_client):
            try:
                await run_blocking(client.create_queue)
                logger.info(f"✅ Created queue: {client.queue_name}")
            except ResourceExistsError:
                logger.info(f"📁 Queue already exists: {client.queue_name}")
            except AzureError as e:
                logger.error(f"❌ Failed to create queue {client.queue_name}: {e}")
                ok = False
        return ok

    async def enqueue(self, job: ChunkJob) -> str:
        """Send a job; it becomes visible to consumers immediately."""
        try:
            response = await asyncio.wait_for(
                run_blocking(self.queue_client.send_message, json.dumps(job.to_dict())),
                timeout=self.settings.timeout_seconds,
            )
        except (AzureError, asyncio.TimeoutError) as e:
            logger.error(
                f"❌ Failed to enqueue chunk {job.seq} of {job.session_id}: {e}",
                extra={"session_id": job.session_id, "seq": job.seq, "stage": "enqueue"},
            )
            raise QueueError(f"enqueue failed: {e}", {"session_id": job.session_id, "seq": job.seq}) from e

        logger.info(
            f"✅ Transcription job enqueued: session={job.session_id}, seq={job.seq}, message_id={response.id}",
            extra={"session_id": job.session_id, "seq": job.seq, "stage": "enqueue"},
        )
        return response.id

    async def receive(self, max_messages: int = 1) -> List[QueueMessage]:
        """Receive up to ``max_messages`` jobs. Unparseable messages are dead-lettered."""
        try:
            messages = await run_blocking(
                lambda: list(
                    self.queue_client.receive_messages(
                        messages_per_page=max_messages,
                        max_messages=max_messages,
                        visibility_timeout=self.settings.visibility_timeout,
                    )
                )
            )
        except AzureError as e:
            raise QueueError(f"receive failed: {e}") from e

        received = []
        for message in messages:
            try:
                job = ChunkJob.from_dict(json.loads(message.content))
            except (ValueError, KeyError, TypeError) as e:
                logger.error(f"❌ Failed to parse queue message {message.id}: {e}")
                await self._dead_letter(message.content, message.id, message.pop_receipt)
                continue
            received.append(
                QueueMessage(
                    job=job,
                    message_id=message.id,
                    pop_receipt=message.pop_receipt,
                    dequeue_count=message.dequeue_count or 1,
                    raw=message.content,
                )
            )
        return received

    async def ack(self, message: QueueMessage) -> None:
        """Delete a processed message from the queue (non-blocking)."""
        try:
            await run_blocking(self.queue_client.delete_message, message.message_id, message.pop_receipt)
            logger.debug(f"✅ Deleted message: {message.message_id}")
        except AzureError as e:
            raise QueueError(f"delete of {message.message_id} failed: {e}") from e

    async def nack(self, message: QueueMessage) -> None:
        """Move a message to the poison queue."""
        raw = message.raw or json.dumps(message.job.to_dict())
        await self._dead_letter(raw, message.message_id, message.pop_receipt)
        logger.warning(
            f"☠️ Chunk {message.job.seq} of {message.job.session_id} moved to {self.settings.poison_queue_name}",
            extra={"session_id": message.job.session_id, "seq": message.job.seq, "stage": "dead_letter"},
        )

    async def get_queue_length(self) -> int:
        """Get approximate number of messages in queue (non-blocking)."""
        try:
            properties = await run_blocking(self.queue_client.get_queue_properties)
        except AzureError as e:
            raise QueueError(f"queue properties unavailable: {e}") from e
        return properties.approximate_message_count

    async def _dead_letter(self, content: str, message_id: str, pop_receipt: str) -> None:
        try:
            await run_blocking(self.poison_client.send_message, content)
            await run_blocking(self.queue_client.delete_message, message_id, pop_receipt)
        except AzureError as e:
            raise QueueError(f"dead-lettering of {message_id} failed: {e}") from e
