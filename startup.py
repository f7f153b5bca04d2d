import logging
import os
import sys
import traceback

import uvicorn

# Add the src directory to Python path
current_dir = os.path.dirname(os.path.abspath(__file__))
src_path = os.path.join(current_dir, "src")
sys.path.insert(0, src_path)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)
logger = logging.getLogger(__name__)


def _log_environment() -> None:
    """Log the settings that decide where state and audio go, without secrets."""
    logger.info("=" * 60)
    logger.info("chunkscribe startup")
    logger.info("=" * 60)
    logger.info(f"Python version: {sys.version.split()[0]}")
    logger.info(f"  PORT: {os.environ.get('PORT', '8000')}")
    logger.info(f"  APP_ENV: {os.environ.get('APP_ENV', 'not set')}")
    logger.info(f"  MONGO_BACKEND: {os.environ.get('MONGO_BACKEND', 'memory')}")
    logger.info(f"  MONGO_URI: {'✅ set' if os.environ.get('MONGO_URI') else '❌ not set'}")
    logger.info(
        f"  AZURE_BLOB_CONNECTION_STRING: {'✅ set' if os.environ.get('AZURE_BLOB_CONNECTION_STRING') else '❌ not set'}"
    )
    logger.info(f"  TRANSCRIBER_ENDPOINT: {'✅ set' if os.environ.get('TRANSCRIBER_ENDPOINT') else '❌ not set'}")
    logger.info(f"  TRANSCRIBER_CALLBACK_BASE: {os.environ.get('TRANSCRIBER_CALLBACK_BASE', 'not set')}")
    logger.info(f"  SUMMARIZER_SEGMENT_URL: {'✅ set' if os.environ.get('SUMMARIZER_SEGMENT_URL') else '❌ not set'}")
    logger.info(f"  ENABLE_TRANSCRIPTION_WORKER: {os.environ.get('ENABLE_TRANSCRIPTION_WORKER', 'false')}")


if __name__ == "__main__":
    _log_environment()
    try:
        from chunkscribe.core.config import get_settings

        try:
            settings = get_settings()
        except ValueError as ve:
            logger.error(f"❌ Configuration validation failed: {ve}")
            logger.error(traceback.format_exc())
            sys.exit(1)

        port = int(os.environ.get("PORT", settings.port))
        host = os.environ.get("HOST", settings.host)
        logger.info(f"Starting {settings.app_name} v{settings.app_version} on {host}:{port}")

        uvicorn.run(
            "chunkscribe.app:app",
            host=host,
            port=port,
            workers=1,
            log_level="info",
            access_log=True,
            timeout_keep_alive=75,
            timeout_graceful_shutdown=30,
        )
    except KeyboardInterrupt:
        logger.info("⚠️  Shutting down due to keyboard interrupt")
        sys.exit(0)
