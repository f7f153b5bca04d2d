"""
Azure Blob Storage object store.

Holds raw chunk audio, per-chunk transcripts, segment inputs, segment
summaries and the consolidated summary manifest. The SDK client is
synchronous; every call runs in the default executor under a timeout.
"""

import asyncio
import logging
import time
from datetime import datetime, timedelta
from typing import Dict, Optional

import requests
from azure.core.exceptions import AzureError, ResourceExistsError, ResourceNotFoundError
from azure.core.pipeline.transport import RequestsTransport
from azure.storage.blob import (
    BlobSasPermissions,
    BlobServiceClient,
    ContentSettings,
    generate_blob_sas,
)
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from ...application.ports.services.object_storage import ObjectStorage
from ...core.config import AzureBlobSettings
from ...core.exceptions import ConfigurationError, StorageError
from ...core.utils.blocking import run_blocking

logger = logging.getLogger(__name__)

_TRANSIENT_MARKERS = ("timeout", "connection", "500", "502", "503", "504")


def parse_connection_string(connection_string: str) -> Dict[str, str]:
    """Split ``Key=Value;Key=Value`` into a dict (values may contain '=')."""
    parts = {}
    for part in connection_string.split(";"):
        if "=" in part:
            key, value = part.split("=", 1)
            parts[key.strip()] = value.strip()
    return parts


class AzureBlobObjectStorage(ObjectStorage):
    """Azure Blob Storage implementation of the object store."""

    def __init__(self, settings: AzureBlobSettings, max_retries: int = 3, base_delay: float = 1.0):
        self.settings = settings
        self._client: Optional[BlobServiceClient] = None
        self._container_client = None
        self._max_retries = max_retries
        self._base_delay = base_delay

    @property
    def container(self) -> str:
        return self.settings.container_name

    @property
    def client(self) -> BlobServiceClient:
        """Get or create BlobServiceClient with connection timeouts."""
        if self._client is None:
            if not self.settings.connection_string:
                raise ConfigurationError(
                    "Azure Blob Storage connection string is required. Set AZURE_BLOB_CONNECTION_STRING"
                )

            session = requests.Session()
            retry_strategy = Retry(
                total=3,
                connect=3,
                read=3,
                backoff_factor=0.8,
                status_forcelist=[429, 500, 502, 503, 504],
            )
            adapter = HTTPAdapter(max_retries=retry_strategy, pool_connections=10, pool_maxsize=10)
            session.mount("http://", adapter)
            session.mount("https://", adapter)

            transport = RequestsTransport(
                session=session,
                connection_timeout=self.settings.connection_timeout,
                read_timeout=self.settings.read_timeout,
            )
            self._client = BlobServiceClient.from_connection_string(
                self.settings.connection_string, transport=transport
            )
            logger.info(
                f"✅ Azure Blob Storage client initialized for container: {self.settings.container_name} "
                f"(connection_timeout={self.settings.connection_timeout}s, read_timeout={self.settings.read_timeout}s)"
            )
        return self._client

    @property
    def container_client(self):
        """Get or create container client."""
        if self._container_client is None:
            self._container_client = self.client.get_container_client(self.settings.container_name)
        return self._container_client

    async def ensure_container_exists(self) -> bool:
        """Ensure the blob container exists (non-blocking)."""
        try:
            await run_blocking(self.container_client.create_container)
            logger.info(f"✅ Created blob container: {self.settings.container_name}")
            return True
        except ResourceExistsError:
            logger.info(f"📁 Blob container already exists: {self.settings.container_name}")
            return True
        except AzureError as e:
            logger.error(f"❌ Failed to create blob container: {e}")
            return False

    async def ping(self) -> None:
        try:
            await asyncio.wait_for(
                run_blocking(self.container_client.get_container_properties),
                timeout=self.settings.timeout_seconds,
            )
        except (AzureError, asyncio.TimeoutError) as e:
            raise StorageError(f"container {self.settings.container_name} unreachable: {e}") from e

    async def put(self, key: str, data: bytes, content_type: str) -> None:
        """Upload ``data`` to ``key``, overwriting any existing blob."""
        blob_client = self.client.get_blob_client(container=self.settings.container_name, blob=key)

        def _upload():
            return blob_client.upload_blob(
                data,
                overwrite=True,
                content_settings=ContentSettings(content_type=content_type),
            )

        start = time.time()
        await self._with_retry("upload", key, _upload)
        logger.debug(f"Uploaded blob {key} ({len(data)} bytes) in {time.time() - start:.2f}s")

    async def get(self, key: str) -> bytes:
        """Download a blob's content."""
        blob_client = self.client.get_blob_client(container=self.settings.container_name, blob=key)

        def _download():
            return blob_client.download_blob().readall()

        return await self._with_retry("download", key, _download)

    async def presigned_get_url(self, key: str, ttl_seconds: Optional[int] = None) -> str:
        """Read-only SAS URL for ``key``."""
        ttl_seconds = ttl_seconds or self.settings.presign_ttl_seconds
        account_name = self.settings.account_name
        account_key = self.settings.account_key
        shared_access_signature = None

        if self.settings.connection_string:
            parts = parse_connection_string(self.settings.connection_string)
            account_key = parts.get("AccountKey", account_key)
            account_name = account_name or parts.get("AccountName", "")
            if parts.get("SharedAccessSignature"):
                shared_access_signature = parts["SharedAccessSignature"].lstrip("?")

        if not account_name:
            raise ConfigurationError(
                "Azure Blob Storage account_name is required for presigned URLs. "
                "Set AZURE_BLOB_ACCOUNT_NAME or include AccountName in the connection string."
            )

        blob_url = f"https://{account_name}.blob.core.windows.net/{self.settings.container_name}/{key}"
        if not account_key:
            if shared_access_signature:
                logger.info(f"⚠️ Using shared access signature from connection string for blob: {key}")
                return f"{blob_url}?{shared_access_signature}"
            raise ConfigurationError(
                "Azure Blob Storage account_key is required for presigned URLs. "
                "Set AZURE_BLOB_ACCOUNT_KEY or include AccountKey or SharedAccessSignature in the connection string."
            )

        sas_token = generate_blob_sas(
            account_name=account_name,
            container_name=self.settings.container_name,
            blob_name=key,
            account_key=account_key,
            permission=BlobSasPermissions(read=True),
            expiry=datetime.utcnow() + timedelta(seconds=ttl_seconds),
        )
        return f"{blob_url}?{sas_token}"

    async def _with_retry(self, operation: str, key: str, func):
        for attempt in range(self._max_retries):
            try:
                return await asyncio.wait_for(run_blocking(func), timeout=self.settings.timeout_seconds)
            except ResourceNotFoundError:
                raise FileNotFoundError(f"Blob not found: {key}")
            except asyncio.TimeoutError as e:
                logger.error(
                    f"❌ Blob {operation} timeout after {self.settings.timeout_seconds}s "
                    f"(attempt {attempt + 1}/{self._max_retries}): {key}"
                )
                if attempt < self._max_retries - 1:
                    await asyncio.sleep(self._base_delay * (2 ** attempt))
                    continue
                raise StorageError(
                    f"{operation} of {key} timed out after {self._max_retries} attempts"
                ) from e
            except AzureError as e:
                is_transient = any(marker in str(e).lower() for marker in _TRANSIENT_MARKERS)
                if is_transient and attempt < self._max_retries - 1:
                    delay = self._base_delay * (2 ** attempt)
                    logger.warning(
                        f"Transient error during blob {operation} (attempt {attempt + 1}/{self._max_retries}): "
                        f"{e}. Retrying in {delay}s..."
                    )
                    await asyncio.sleep(delay)
                    continue
                logger.error(f"❌ Blob {operation} failed for {key}: {e}")
                raise StorageError(f"{operation} of {key} failed: {e}") from e
