"""
Standalone startup script for the transcription worker.
Run this as a separate process/service for production deployments.
"""
import sys
from pathlib import Path

# Bootstrap: Add src directory to Python path for src-layout convenience
_script_dir = Path(__file__).resolve().parent
_src_dir_str = str(_script_dir / "src")
if _src_dir_str not in sys.path:
    sys.path.insert(0, _src_dir_str)

import asyncio
import logging

logger = logging.getLogger(__name__)


async def main():
    """Entry point for standalone worker process."""
    from chunkscribe.core.config import get_settings
    from chunkscribe.core.container import build_container
    from chunkscribe.core.structured_logger import configure_logging
    from chunkscribe.workers.transcription_worker import build_worker

    settings = get_settings()
    configure_logging(settings.logging)

    if settings.enable_transcription_worker:
        logger.warning(
            "⚠️  ENABLE_TRANSCRIPTION_WORKER=true detected. The API process also runs a worker; "
            "run it in-process or standalone, not both, unless you want two consumers."
        )
    if settings.database.backend == "memory":
        logger.warning("⚠️  Standalone worker on the in-memory entity store cannot see API state")

    container = build_container(settings)
    await container.startup()
    await build_worker(container).run(install_signal_handlers=True)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("🛑 Worker stopped by user")
