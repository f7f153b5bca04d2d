"""
Configuration management for chunkscribe.

This module provides centralized configuration using Pydantic Settings
for environment-based configuration management.
"""

from typing import List, Optional

import json
import os
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class DatabaseSettings(BaseSettings):
    """Entity store configuration settings."""

    model_config = SettingsConfigDict(env_prefix="MONGO_")

    backend: str = Field(default="memory", description="Entity store backend (memory or mongo)")
    uri: str = Field(default="", description="MongoDB connection URI")
    db_name: str = Field(default="chunkscribe", description="MongoDB database name")
    server_selection_timeout_ms: int = Field(default=15000, description="Server selection timeout")

    @field_validator("backend")
    @classmethod
    def validate_backend(cls, v: str) -> str:
        """Validate entity store backend."""
        valid_backends = ["memory", "mongo"]
        if v.lower() not in valid_backends:
            raise ValueError(f"Entity store backend must be one of: {valid_backends}")
        return v.lower()

    @field_validator("uri")
    @classmethod
    def validate_mongo_uri(cls, v: str) -> str:
        """Validate MongoDB URI format."""
        if v and not v.startswith(("mongodb://", "mongodb+srv://")):
            raise ValueError(
                "MongoDB URI must start with 'mongodb://' or 'mongodb+srv://'"
            )
        return v


class CORSSettings(BaseSettings):
    """CORS configuration settings."""

    model_config = SettingsConfigDict(env_prefix="CORS_")

    allowed_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:8080"],
        description="Allowed CORS origins",
    )
    allowed_methods: List[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        description="Allowed HTTP methods",
    )
    allowed_headers: List[str] = Field(
        default=["*"], description="Allowed HTTP headers"
    )
    allow_credentials: bool = Field(
        default=True, description="Allow credentials in CORS"
    )

    @field_validator("allowed_origins", mode="before")
    @classmethod
    def parse_allowed_origins(cls, v):
        """Parse allowed origins from string or list."""
        if isinstance(v, str):
            if v.startswith("[") and v.endswith("]"):
                try:
                    return json.loads(v)
                except json.JSONDecodeError:
                    return [v.strip()]
            return [item.strip() for item in v.split(",") if item.strip()]
        return v


class LoggingSettings(BaseSettings):
    """Logging configuration settings."""

    model_config = SettingsConfigDict(env_prefix="LOG_")

    level: str = Field(default="INFO", description="Logging level")
    format: str = Field(default="json", description="Log format (json or text)")
    azure_sdk_level: str = Field(default="WARNING", description="Log level for Azure SDK loggers")

    @field_validator("level", "azure_sdk_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate logging level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format."""
        if v.lower() not in ["json", "text"]:
            raise ValueError("Log format must be 'json' or 'text'")
        return v.lower()


class AzureBlobSettings(BaseSettings):
    """Azure Blob Storage configuration settings."""

    model_config = SettingsConfigDict(env_prefix="AZURE_BLOB_")

    account_name: str = Field(default="", description="Azure Storage Account Name")
    account_key: str = Field(default="", description="Azure Storage Account Key")
    connection_string: str = Field(default="", description="Azure Storage Connection String")
    container_name: str = Field(default="chunkscribe", description="Blob container name")
    presign_ttl_seconds: int = Field(default=3600, description="Default expiry for presigned read URLs")
    timeout_seconds: float = Field(default=60.0, description="Timeout for a single blob operation")
    connection_timeout: int = Field(default=30, description="HTTP connect timeout for the blob transport")
    read_timeout: int = Field(default=120, description="HTTP read timeout for the blob transport")

    @field_validator("connection_string")
    @classmethod
    def validate_connection_string(cls, v: str) -> str:
        """Validate Azure Storage connection string."""
        if v and not v.startswith("DefaultEndpointsProtocol="):
            raise ValueError("Invalid Azure Storage connection string format")
        return v


class AzureQueueSettings(BaseSettings):
    """Azure Queue Storage configuration settings."""

    model_config = SettingsConfigDict(env_prefix="AZURE_QUEUE_")

    connection_string: str = Field(default="", description="Azure Storage Connection String (falls back to blob)")
    queue_name: str = Field(default="transcribe-chunks", description="Queue name for chunk transcription jobs")
    poison_queue_suffix: str = Field(default="-poison", description="Suffix of the dead-letter queue")
    visibility_timeout: int = Field(default=300, description="Message visibility timeout in seconds")
    poll_interval: int = Field(default=5, description="Worker poll interval in seconds")
    prefetch: int = Field(default=4, description="Maximum chunks submitted concurrently by one worker")
    timeout_seconds: float = Field(default=30.0, description="Timeout for a single queue operation")

    @field_validator("connection_string")
    @classmethod
    def validate_connection_string(cls, v: str) -> str:
        """Validate Azure Storage connection string format."""
        if v and not v.startswith("DefaultEndpointsProtocol="):
            raise ValueError("Invalid Azure Storage connection string format. Must start with 'DefaultEndpointsProtocol='")
        return v

    @field_validator("prefetch")
    @classmethod
    def validate_prefetch(cls, v: int) -> int:
        """Validate worker concurrency."""
        if not 1 <= v <= 32:
            raise ValueError("Prefetch must be between 1 and 32")
        return v

    @property
    def poison_queue_name(self) -> str:
        return f"{self.queue_name}{self.poison_queue_suffix}"


class TranscriberSettings(BaseSettings):
    """Remote transcription endpoint configuration settings."""

    model_config = SettingsConfigDict(env_prefix="TRANSCRIBER_")

    endpoint: str = Field(default="", description="Serverless transcription endpoint URL (async run)")
    api_key: str = Field(default="", description="Bearer API key for the transcription endpoint")
    callback_base: str = Field(
        default="http://localhost:8000/transcription-callback",
        description="Public URL of the transcription callback route",
    )
    model: str = Field(default="medium", description="Whisper model name")
    language: str = Field(default="he", description="Transcription language")
    word_timestamps: bool = Field(default=True, description="Request word-level timestamps")
    enable_vad: bool = Field(default=True, description="Enable voice activity detection")
    timeout_seconds: float = Field(default=30.0, description="Timeout for job submission")

    @field_validator("callback_base")
    @classmethod
    def validate_callback_base(cls, v: str) -> str:
        """Validate callback URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("Callback base must be an http(s) URL")
        return v


class SummarizerSettings(BaseSettings):
    """External summarizer and finalizer function settings."""

    model_config = SettingsConfigDict(env_prefix="SUMMARIZER_")

    segment_url: str = Field(default="", description="HTTP function that summarizes one segment")
    finalizer_url: str = Field(default="", description="HTTP function that finalizes a session")
    function_key: str = Field(default="", description="Function key sent as x-functions-key")
    timeout_seconds: float = Field(default=120.0, description="Timeout for one summarizer call")


class SegmentationSettings(BaseSettings):
    """Rolling transcript merge and segmentation settings."""

    model_config = SettingsConfigDict(env_prefix="SEGMENTATION_")

    token_threshold: int = Field(default=1200, description="Token count at which a segment is cut")
    watermark_epsilon_seconds: float = Field(
        default=0.15, description="Tolerance applied to the dedup watermark at chunk boundaries"
    )
    max_commit_retries: int = Field(default=8, description="Attempts for a conflicting rolling-state commit")
    commit_backoff_seconds: float = Field(
        default=0.02, description="Upper bound of the jittered pause per retry attempt"
    )

    @field_validator("token_threshold", "max_commit_retries")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        """Validate positive integers."""
        if v < 1:
            raise ValueError("Value must be a positive integer")
        return v

    @field_validator("commit_backoff_seconds")
    @classmethod
    def validate_backoff(cls, v: float) -> float:
        """Validate commit retry backoff."""
        if v < 0:
            raise ValueError("Commit backoff cannot be negative")
        return v

    @field_validator("watermark_epsilon_seconds")
    @classmethod
    def validate_epsilon(cls, v: float) -> float:
        """Validate watermark tolerance."""
        if not 0.0 <= v <= 5.0:
            raise ValueError("Watermark epsilon must be between 0 and 5 seconds")
        return v


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=False, extra="ignore"
    )

    # Application settings
    app_name: str = Field(default="chunkscribe", description="Application name")
    app_version: str = Field(default="0.1.0", description="Application version")
    app_env: str = Field(default="development", description="Application environment")
    debug: bool = Field(default=False, description="Debug mode")
    port: int = Field(default=8000, description="Application port")
    host: str = Field(default="0.0.0.0", description="Application host")
    enable_transcription_worker: bool = Field(
        default=False, description="Run the queue consumer inside the API process"
    )

    # Sub-settings
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    cors: CORSSettings = Field(default_factory=CORSSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    azure_blob: AzureBlobSettings = Field(default_factory=AzureBlobSettings)
    azure_queue: AzureQueueSettings = Field(default_factory=AzureQueueSettings)
    transcriber: TranscriberSettings = Field(default_factory=TranscriberSettings)
    summarizer: SummarizerSettings = Field(default_factory=SummarizerSettings)
    segmentation: SegmentationSettings = Field(default_factory=SegmentationSettings)

    def __init__(self, **kwargs):
        super().__init__(**kwargs)

        # Override sub-settings with environment variables
        self.database = DatabaseSettings()
        self.cors = CORSSettings()
        self.logging = LoggingSettings()
        self.azure_blob = AzureBlobSettings()
        self.azure_queue = AzureQueueSettings()
        self.transcriber = TranscriberSettings()
        self.summarizer = SummarizerSettings()
        self.segmentation = SegmentationSettings()

        # Queue lives in the same storage account as the blobs unless told otherwise
        if not self.azure_queue.connection_string and self.azure_blob.connection_string:
            self.azure_queue.connection_string = self.azure_blob.connection_string

    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        """Validate application environment."""
        valid_envs = ["development", "staging", "production", "testing"]
        if v.lower() not in valid_envs:
            raise ValueError(f"App environment must be one of: {valid_envs}")
        return v.lower()

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        """Validate port number."""
        if not 1 <= v <= 65535:
            raise ValueError("Port must be between 1 and 65535")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"

    @property
    def is_testing(self) -> bool:
        """Check if running in testing mode."""
        return self.app_env == "testing"


# Global settings instance (loaded after attempting to read .env)
_settings: Optional[Settings] = None


def _load_env_file_if_available() -> None:
    """Best-effort load of .env by searching current and parent directories.

    Covers processes started outside the project root, where pydantic's
    relative env_file does not resolve.
    """
    from dotenv import load_dotenv

    cwd = Path(os.getcwd()).resolve()
    for parent in [cwd, *cwd.parents]:
        candidate = parent / ".env"
        if candidate.exists():
            # Do not override already-set environment variables
            load_dotenv(dotenv_path=str(candidate), override=False)
            break


def get_settings() -> Settings:
    """Get application settings instance (lazy-init with .env discovery)."""
    global _settings
    if _settings is None:
        _load_env_file_if_available()
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next call re-reads the environment."""
    global _settings
    _settings = None
