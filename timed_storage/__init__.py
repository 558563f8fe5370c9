"""Embedded key-value cache with sliding and absolute expiration."""

from timed_storage.core.cache import CacheService
from timed_storage.core.config import Settings
from timed_storage.core.container import Container
from timed_storage.core.database import Database
from timed_storage.core.exceptions import (
    ConfigError,
    ConfigurationError,
    InvalidKeyError,
    StoreError,
    TimedStorageError,
)
from timed_storage.core.logging import configure_logging, get_logger
from timed_storage.models.items import CacheItem
from timed_storage.services.expiration import ExpirationPolicy

__all__ = [
    "CacheItem",
    "CacheService",
    "ConfigError",
    "ConfigurationError",
    "Container",
    "Database",
    "ExpirationPolicy",
    "InvalidKeyError",
    "Settings",
    "StoreError",
    "TimedStorageError",
    "configure_logging",
    "get_logger",
]
