"""Shared fixtures: settings, a file-backed SQLite database, and fakes."""

import logfire
import pytest
import pytest_asyncio

from arena.config import Settings
from arena.database import Database
from arena.tournament.roster import seed_agents
from arena.tournament.service import TournamentService
from tests.helpers import FakeFeed, FakeGateway, no_sleep

logfire.configure(send_to_logfire=False, console=False)


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        data_dir=tmp_path,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'arena.db'}",
    )


@pytest_asyncio.fixture
async def db(settings):
    """Fresh schema with the agent roster seeded."""
    database = Database(settings.database_url)
    await database.create_all()
    async with database.session() as session:
        await seed_agents(session)
        await session.commit()

    yield database

    await database.dispose()


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture
def feed() -> FakeFeed:
    return FakeFeed()


@pytest.fixture
def tournament(settings, db, gateway, feed) -> TournamentService:
    return TournamentService(settings, db, gateway, feed, sleep=no_sleep)
