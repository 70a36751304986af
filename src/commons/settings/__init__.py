"""Settings management module."""

from src.commons.settings.loader import SettingsLoader, get_settings, reset_settings
from src.commons.settings.models import (
    AppSettings,
    BlobStorageSettings,
    BucketSettings,
    DocumentCollectionSettings,
    DocumentDBSettings,
    ProcessingSettings,
    QuerySettings,
    ServerSettings,
    Settings,
    TelemetrySettings,
    TranscodingSettings,
    UploadSettings,
)

__all__ = [
    # Loader
    "SettingsLoader",
    "get_settings",
    "reset_settings",
    # Main settings
    "Settings",
    "AppSettings",
    "ServerSettings",
    # Storage
    "BlobStorageSettings",
    "BucketSettings",
    "DocumentDBSettings",
    "DocumentCollectionSettings",
    # Media pipeline
    "TranscodingSettings",
    "UploadSettings",
    "ProcessingSettings",
    # Catalog queries
    "QuerySettings",
    # Telemetry
    "TelemetrySettings",
]
