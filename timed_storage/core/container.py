"""Dependency injection container for the storage."""

from dependency_injector import containers, providers

from timed_storage.core.config import Settings
from timed_storage.core.database import Database
from timed_storage.core.cache import CacheService
from timed_storage.core.logging import configure_logging


class Container(containers.DeclarativeContainer):
    """Storage dependency injection container."""

    settings = providers.Singleton(
        Settings,
    )

    logging = providers.Resource(
        configure_logging,
        settings=settings
    )

    database = providers.Singleton(
        Database,
        settings=settings
    )

    cache = providers.Singleton(
        CacheService,
        settings=settings,
        database=database
    )
