import pydantic
import pytest
import structlog
from dependency_injector import providers

from timed_storage.core.cache import CacheService
from timed_storage.core.config import Settings
from timed_storage.core.container import Container
from timed_storage.core.database import Database
from timed_storage.core.logging import get_logger


def test_settings_read_prefixed_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("TIMED_STORAGE_SLIDING_EXPIRATION", "30")
    monkeypatch.setenv("TIMED_STORAGE_DATABASE_URL", f"sqlite+aiosqlite:///{tmp_path / 'sub' / 'x.sqlite'}")

    settings = Settings()

    assert settings.sliding_expiration == 30.0
    assert settings.expiration_enabled
    assert (tmp_path / "sub").is_dir()


def test_settings_reject_negative_durations():
    with pytest.raises(pydantic.ValidationError):
        Settings(absolute_expiration=-1)


def test_memory_url_is_detected():
    assert Settings(database_url="sqlite+aiosqlite:///:memory:").is_memory_database


def test_container_logging_resource_configures_structlog(tmp_path):
    log_file = tmp_path / "logs" / "storage.log"
    container = Container()
    container.settings.override(providers.Object(Settings(log_format="json", log_file=str(log_file))))

    container.init_resources()
    try:
        assert log_file.parent.is_dir()
        config = structlog.get_config()
        assert isinstance(config["logger_factory"], structlog.stdlib.LoggerFactory)
        assert isinstance(config["processors"][-1], structlog.processors.JSONRenderer)
        get_logger("tests").info("configured", ok=True)
    finally:
        container.shutdown_resources()


@pytest.mark.asyncio
async def test_container_wires_singletons(settings):
    container = Container()
    container.settings.override(providers.Object(settings))

    cache = container.cache()
    assert isinstance(cache, CacheService)
    assert cache is container.cache()
    assert cache.database is container.database()

    await cache.startup()
    try:
        await cache.set("wired", True)
        assert await cache.get("wired") is True
    finally:
        await cache.shutdown()


@pytest.mark.asyncio
async def test_startup_applies_configured_expiration(tmp_path):
    settings = Settings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'cfg.sqlite'}",
        sliding_expiration=300,
        absolute_expiration=600,
    )
    cache = CacheService(settings, Database(settings))

    await cache.startup()
    try:
        assert cache.policy.sliding == 300
        assert cache.policy.absolute == 600
    finally:
        await cache.shutdown()
