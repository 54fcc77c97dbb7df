import datetime

import aiosqlite
import pytest
import pytest_asyncio

from clock import CIVIL_TZ, CivilClock
from couples import CoupleDirectory
from maintenance import StreakMaintenance
from streak_engine import StreakEngine
from streak_store import StreakStore

GUILD_ID = 1
USER_A = 1001
USER_B = 1002


class FrozenTime:
    """Mutable 'now' for CivilClock; starts at noon UTC+7 on 2025-03-10."""

    def __init__(self):
        self.instant = datetime.datetime(2025, 3, 10, 12, 0, tzinfo=CIVIL_TZ)

    def __call__(self) -> datetime.datetime:
        return self.instant

    def set_day(self, civil_date: str):
        day = datetime.date.fromisoformat(civil_date)
        self.instant = datetime.datetime(day.year, day.month, day.day, 12, 0, tzinfo=CIVIL_TZ)

    def advance(self, days: int = 1):
        self.instant += datetime.timedelta(days=days)


@pytest.fixture
def frozen():
    return FrozenTime()


@pytest.fixture
def clock(frozen):
    return CivilClock(frozen)


@pytest_asyncio.fixture
async def db():
    conn = await aiosqlite.connect(":memory:")
    yield conn
    await conn.close()


@pytest_asyncio.fixture
async def couples(db):
    directory = CoupleDirectory(db)
    await directory.create_table()
    return directory


@pytest_asyncio.fixture
async def store(db, clock):
    streak_store = StreakStore(db, clock)
    await streak_store.create_table()
    return streak_store


@pytest.fixture
def engine(store, couples, clock):
    return StreakEngine(store, couples, clock)


@pytest.fixture
def maintenance(store):
    return StreakMaintenance(store)


@pytest_asyncio.fixture
async def couple(couples):
    return await couples.link(GUILD_ID, USER_A, USER_B)
