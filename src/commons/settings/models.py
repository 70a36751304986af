"""Pydantic settings models for application configuration."""

import os
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppSettings(BaseModel):
    """Application-level settings."""

    name: str = "streamline-media"
    version: str = "0.1.0"
    environment: Literal["dev", "staging", "prod"] = "dev"
    debug: bool = False
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


class ServerSettings(BaseModel):
    """HTTP server settings."""

    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)
    workers: int = Field(default=1, ge=1, le=32)
    reload: bool = False
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    api_prefix: str = "/v1"
    docs_enabled: bool = True
    # users allowed to run catalog repair endpoints
    maintainer_ids: list[str] = Field(default_factory=list)


class BucketSettings(BaseModel):
    """Bucket name configuration."""

    videos: str = "streamline-videos"
    thumbnails: str = "streamline-thumbnails"


class BlobStorageSettings(BaseModel):
    """Blob storage settings (MinIO/S3)."""

    provider: Literal["minio", "memory"] = "minio"
    endpoint: str = "localhost:9000"
    access_key: str = ""
    secret_key: str = ""
    use_ssl: bool = False
    region: str = "us-east-1"
    buckets: BucketSettings = Field(default_factory=BucketSettings)


class DocumentCollectionSettings(BaseModel):
    """Document DB collection names."""

    videos: str = "videos"
    channels: str = "channels"


class DocumentDBSettings(BaseModel):
    """Document database settings (MongoDB)."""

    provider: Literal["mongodb", "memory"] = "mongodb"
    host: str = "localhost"
    port: int = 27017
    username: str = ""
    password: str = ""
    database: str = "streamline"
    auth_source: str = "admin"
    collections: DocumentCollectionSettings = Field(
        default_factory=DocumentCollectionSettings
    )


class TranscodingSettings(BaseModel):
    """Encoder binaries and the fixed web playback profile.

    The numeric defaults are part of the playback contract and should only
    be overridden for testing.
    """

    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    output_height: int = 720
    video_codec: str = "libx264"
    video_bitrate_kbps: int = 1000
    video_maxrate_kbps: int = 1500
    video_bufsize_kbps: int = 2000
    profile: str = "main"
    level: str = "3.1"
    audio_codec: str = "aac"
    audio_bitrate_kbps: int = 128
    audio_sample_rate: int = 44100
    thumbnail_offset_seconds: float = 2.0
    thumbnail_width: int = 320
    thumbnail_height: int = 180
    max_concurrent_transcodes: int = Field(
        default_factory=lambda: os.cpu_count() or 1,
        ge=1,
    )
    timeout_seconds: int = 1800


class UploadSettings(BaseModel):
    """Upload acceptance rules."""

    max_request_size_mb: int = 100  # transport-level hard limit
    max_video_size_mb: int = 50  # application-level limit
    temp_dir: str | None = None
    chunk_size_bytes: int = 1024 * 1024
    deduplicate_by_content_hash: bool = False


class ProcessingSettings(BaseModel):
    """Retry policy for catalog writes."""

    retry_attempts: int = Field(default=3, ge=1)
    retry_delay_seconds: float = Field(default=0.2, ge=0)
    channel_link_retry_attempts: int = Field(default=3, ge=1)


class QuerySettings(BaseModel):
    """List/query endpoint behaviour."""

    default_page_size: int = Field(default=12, ge=1)
    max_page_size: int = Field(default=100, ge=1)
    strict_parameters: bool = True
    suggestion_limit: int = 5
    trending_limit: int = 10


class TelemetrySettings(BaseModel):
    """Telemetry and observability settings."""

    enabled: bool = True
    log_format: Literal["json", "text"] = "json"
    log_level: str = "INFO"


class Settings(BaseSettings):
    """Root settings container with environment loading."""

    app: AppSettings = Field(default_factory=AppSettings)
    server: ServerSettings = Field(default_factory=ServerSettings)
    blob_storage: BlobStorageSettings = Field(default_factory=BlobStorageSettings)
    document_db: DocumentDBSettings = Field(default_factory=DocumentDBSettings)
    transcoding: TranscodingSettings = Field(default_factory=TranscodingSettings)
    uploads: UploadSettings = Field(default_factory=UploadSettings)
    processing: ProcessingSettings = Field(default_factory=ProcessingSettings)
    query: QuerySettings = Field(default_factory=QuerySettings)
    telemetry: TelemetrySettings = Field(default_factory=TelemetrySettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="STREAMLINE__",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )
