"""
Background worker that submits queued chunks to the remote transcriber.
Runs inside the API process (lifespan task) or as a separate process.
"""

import asyncio
import logging
import os
import signal
import time
from typing import Optional, Set

from ..adapters.external.transcription_service_runpod import build_webhook_url
from ..application.dto.chunk_dto import QueueMessage
from ..application.ports.repositories.entity_store import EntityStore
from ..application.ports.services.object_storage import ObjectStorage
from ..application.ports.services.transcription_submitter import TranscriptionSubmitter
from ..application.ports.services.work_queue import WorkQueue
from ..core.config import Settings, get_settings
from ..core.exceptions import ChunkscribeException
from ..core.utils.timing import timing
from ..domain.enums.status import ChunkStatus

logger = logging.getLogger(__name__)

# Chunks the worker may still submit; anything later means a redelivery
SUBMITTABLE_STATUSES = (ChunkStatus.UPLOADED, ChunkStatus.RETRYING, ChunkStatus.ENQUEUED)


class TranscriptionWorker:
    """Worker that drains the chunk queue into the remote transcriber."""

    def __init__(
        self,
        entity_store: EntityStore,
        object_storage: ObjectStorage,
        work_queue: WorkQueue,
        submitter: TranscriptionSubmitter,
        settings: Optional[Settings] = None,
    ):
        self.entity_store = entity_store
        self.object_storage = object_storage
        self.work_queue = work_queue
        self.submitter = submitter
        self.settings = settings or get_settings()

        self.poll_interval = self.settings.azure_queue.poll_interval
        self.max_concurrent_jobs = self.settings.azure_queue.prefetch
        self._shutdown_event = asyncio.Event()

    def stop(self) -> None:
        logger.info("🛑 Shutdown requested, stopping worker gracefully...")
        self._shutdown_event.set()

    async def process_job(self, message: QueueMessage) -> None:
        """Submit one chunk and record the remote job.

        The message is acked once the chunk is QUEUED_REMOTE or turns out to
        be already past submission, and nacked when submission fails.
        """
        job = message.job
        ctx = {"session_id": job.session_id, "seq": job.seq, "stage": "submit"}

        chunk = await self.entity_store.get_chunk(job.session_id, job.seq)
        if chunk is None:
            logger.warning(f"Chunk {job.seq} of {job.session_id} not found, dropping message", extra=ctx)
            await self.work_queue.ack(message)
            return
        if chunk.status not in SUBMITTABLE_STATUSES:
            logger.info(
                f"Chunk {job.seq} of {job.session_id} already {chunk.status.value}, skipping resubmission",
                extra=ctx,
            )
            await self.work_queue.ack(message)
            return

        try:
            with timing("submit_chunk", logger, session_id=job.session_id, seq=job.seq):
                audio_url = await self.object_storage.presigned_get_url(
                    job.audio_key, self.settings.azure_blob.presign_ttl_seconds
                )
                webhook_url = build_webhook_url(
                    self.settings.transcriber.callback_base, job, self.object_storage.container
                )
                remote_job_id = await asyncio.wait_for(
                    self.submitter.submit(job, audio_url, webhook_url),
                    timeout=self.settings.transcriber.timeout_seconds,
                )
        except (ChunkscribeException, asyncio.TimeoutError) as e:
            logger.error(f"❌ Submission of chunk {job.seq} of {job.session_id} failed: {e}", extra=ctx)
            await self.work_queue.nack(message)
            return

        updated = await self.entity_store.update_chunk(
            job.session_id,
            job.seq,
            {
                "status": ChunkStatus.QUEUED_REMOTE,
                "remote_job_id": remote_job_id or None,
                "attempt": chunk.attempt + 1,
            },
            expected_status=SUBMITTABLE_STATUSES,
        )
        if updated is None and remote_job_id:
            # A callback overtook the submission; keep its status, record the id only
            await self.entity_store.update_chunk(job.session_id, job.seq, {"remote_job_id": remote_job_id})
        await self.work_queue.ack(message)
        logger.info(
            f"✅ Chunk {job.seq} of {job.session_id} submitted (remote_job_id={remote_job_id or 'n/a'})",
            extra=ctx,
        )

    async def run(self, install_signal_handlers: bool = False) -> None:
        """Main worker loop with bounded concurrency and batch receive."""
        logger.info(
            f"🚀 Starting transcription worker (PID: {os.getpid()}, concurrency={self.max_concurrent_jobs})..."
        )
        semaphore = asyncio.Semaphore(self.max_concurrent_jobs)
        active_tasks: Set[asyncio.Task] = set()
        poll_count = 0
        last_status_log = time.time()

        async def handle_job(message: QueueMessage):
            async with semaphore:
                try:
                    await self.process_job(message)
                except Exception as e:
                    # Message stays invisible until its timeout, then comes back
                    logger.error(
                        f"❌ Unexpected error processing chunk {message.job.seq} of "
                        f"{message.job.session_id}: {e}",
                        exc_info=True,
                    )

        if install_signal_handlers:
            loop = asyncio.get_event_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                loop.add_signal_handler(sig, self.stop)

        while not self._shutdown_event.is_set():
            try:
                free_slots = self.max_concurrent_jobs - len(active_tasks)
                if free_slots <= 0:
                    await asyncio.sleep(1)
                    continue

                messages = await self.work_queue.receive(max_messages=free_slots)
                poll_count += 1
                for message in messages:
                    task = asyncio.create_task(handle_job(message))
                    active_tasks.add(task)
                    task.add_done_callback(active_tasks.discard)

                if not messages:
                    try:
                        await asyncio.wait_for(self._shutdown_event.wait(), timeout=self.poll_interval)
                    except asyncio.TimeoutError:
                        pass

                if time.time() - last_status_log >= 300:
                    logger.info(f"📊 Worker status: poll_count={poll_count}, active_jobs={len(active_tasks)}")
                    last_status_log = time.time()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"❌ Worker error: {e}", exc_info=True)
                await asyncio.sleep(self.poll_interval)

        if active_tasks:
            logger.info(f"⏳ Waiting for {len(active_tasks)} active job(s) to complete (max 60s)...")
            done, pending = await asyncio.wait(active_tasks, timeout=60.0)
            for task in pending:
                task.cancel()
            if pending:
                logger.warning(f"⚠️ {len(pending)} job(s) cancelled at shutdown")
        logger.info("✅ Transcription worker stopped")


def build_worker(container) -> TranscriptionWorker:
    from ..core.container import ENTITY_STORE, OBJECT_STORAGE, TRANSCRIPTION_SUBMITTER, WORK_QUEUE

    return TranscriptionWorker(
        container.get(ENTITY_STORE),
        container.get(OBJECT_STORAGE),
        container.get(WORK_QUEUE),
        container.get(TRANSCRIPTION_SUBMITTER),
        container.settings,
    )

