import pytest
import pytest_asyncio

from timed_storage.core.cache import CacheService
from timed_storage.core.config import Settings
from timed_storage.core.database import Database


class FakeClock:
    """Manually advanced stand-in for time.time."""

    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings(tmp_path):
    return Settings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'store.sqlite'}")


@pytest_asyncio.fixture
async def database(settings):
    db = Database(settings)
    await db.startup()
    yield db
    await db.shutdown()


@pytest_asyncio.fixture
async def cache(settings, clock):
    service = CacheService(settings, Database(settings), clock=clock)
    await service.startup()
    yield service
    await service.shutdown()
