import asyncio
import datetime
import functools
import logging
import sqlite3
import weakref
from dataclasses import dataclass
from typing import Optional

import aiosqlite

from clock import CivilClock

log = logging.getLogger(__name__)

STORE_MAX_ATTEMPTS = 3
STORE_BASE_DELAY = 0.1  # seconds, doubled on each retry

STREAK_COLS = [
    "id", "couple_id", "current_streak", "best_streak", "total_days",
    "user1_completed_today", "user2_completed_today", "completed_on", "last_completed_date",
    "recoveries_used_this_month", "recovery_reset_date", "created_at", "updated_at",
]
BOOL_COLS = {"user1_completed_today", "user2_completed_today"}
UPDATABLE_COLS = set(STREAK_COLS) - {"id", "couple_id", "created_at", "updated_at"}


class TransientStoreFailure(Exception):
    """The streak database stayed locked or busy after every retry."""


@dataclass
class StreakRecord:
    id: int
    couple_id: int
    current_streak: int = 0
    best_streak: int = 0
    total_days: int = 0
    user1_completed_today: bool = False
    user2_completed_today: bool = False
    completed_on: Optional[str] = None  # civil date the completed-today flags belong to
    last_completed_date: Optional[str] = None
    recoveries_used_this_month: int = 0
    recovery_reset_date: str = ""
    created_at: str = ""
    updated_at: str = ""


def _row_to_record(row) -> StreakRecord:
    values = {}
    for i, col in enumerate(STREAK_COLS):
        values[col] = bool(row[i]) if col in BOOL_COLS else row[i]
    return StreakRecord(**values)


def _utcnow_iso() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


def _set_clause(fields: dict) -> tuple[str, list]:
    unknown = set(fields) - UPDATABLE_COLS
    if unknown:
        raise KeyError(f"not updatable: {', '.join(sorted(unknown))}")
    columns = sorted(fields)
    values = [int(fields[c]) if c in BOOL_COLS else fields[c] for c in columns]
    values.append(_utcnow_iso())
    return ", ".join(f"{c} = ?" for c in columns + ["updated_at"]), values


def store_retry(func):
    """Retry a store coroutine on a locked/busy database with exponential backoff.

    Exhausting the attempts raises TransientStoreFailure; nothing half-written is
    left behind because the open transaction is rolled back before each retry.
    """
    @functools.wraps(func)
    async def wrapper(self, *args, **kwargs):
        for attempt in range(STORE_MAX_ATTEMPTS):
            try:
                return await func(self, *args, **kwargs)
            except sqlite3.OperationalError as e:
                if self.db.in_transaction:
                    await self.db.rollback()
                if attempt == STORE_MAX_ATTEMPTS - 1:
                    log.error("All %d attempts failed for %s: %s", STORE_MAX_ATTEMPTS, func.__name__, e)
                    raise TransientStoreFailure(str(e)) from e
                delay = STORE_BASE_DELAY * (2 ** attempt)
                log.warning(
                    "Retry %d/%d for %s: %s. Waiting %.2fs",
                    attempt + 1, STORE_MAX_ATTEMPTS, func.__name__, e, delay,
                )
                await asyncio.sleep(delay)
    return wrapper


class StreakStore:
    """Persistent love-streak records, one per couple.

    Writers must hold ``couple_lock(couple_id)`` across their read-modify-write
    so two check-ins for the same couple never interleave.
    """

    def __init__(self, db: aiosqlite.Connection, clock: CivilClock):
        self.db = db
        self.clock = clock
        self._locks: weakref.WeakValueDictionary[int, asyncio.Lock] = weakref.WeakValueDictionary()

    async def create_table(self):
        await self.db.execute(
            """CREATE TABLE IF NOT EXISTS love_streaks (
                id                         INTEGER PRIMARY KEY AUTOINCREMENT,
                couple_id                  INTEGER NOT NULL UNIQUE,
                current_streak             INTEGER NOT NULL DEFAULT 0,
                best_streak                INTEGER NOT NULL DEFAULT 0,
                total_days                 INTEGER NOT NULL DEFAULT 0,
                user1_completed_today      INTEGER NOT NULL DEFAULT 0,
                user2_completed_today      INTEGER NOT NULL DEFAULT 0,
                completed_on               TEXT,
                last_completed_date        TEXT,
                recoveries_used_this_month INTEGER NOT NULL DEFAULT 0,
                recovery_reset_date        TEXT NOT NULL,
                created_at                 TEXT NOT NULL,
                updated_at                 TEXT NOT NULL
            )"""
        )
        async with self.db.execute("PRAGMA table_info(love_streaks)") as cur:
            existing = {row[1] for row in await cur.fetchall()}
        if "completed_on" not in existing:
            await self.db.execute("ALTER TABLE love_streaks ADD COLUMN completed_on TEXT")
        await self.db.commit()

    def couple_lock(self, couple_id: int) -> asyncio.Lock:
        """Lock shared by everyone working on this couple; dropped once nobody holds it."""
        lock = self._locks.get(couple_id)
        if lock is None:
            lock = self._locks[couple_id] = asyncio.Lock()
        return lock

    @store_retry
    async def get(self, couple_id: int) -> Optional[StreakRecord]:
        async with self.db.execute(
            f"SELECT {', '.join(STREAK_COLS)} FROM love_streaks WHERE couple_id = ?",
            (couple_id,),
        ) as cur:
            row = await cur.fetchone()
        return _row_to_record(row) if row else None

    @store_retry
    async def create(self, couple_id: int) -> StreakRecord:
        """Create a zeroed record; returns the existing one if the couple already has it."""
        now = _utcnow_iso()
        await self.db.execute(
            "INSERT OR IGNORE INTO love_streaks (couple_id, recovery_reset_date, created_at, updated_at) "
            "VALUES (?, ?, ?, ?)",
            (couple_id, self.clock.today(), now, now),
        )
        await self.db.commit()
        async with self.db.execute(
            f"SELECT {', '.join(STREAK_COLS)} FROM love_streaks WHERE couple_id = ?",
            (couple_id,),
        ) as cur:
            row = await cur.fetchone()
        return _row_to_record(row)

    @store_retry
    async def update(self, streak_id: int, fields: dict) -> StreakRecord:
        """Write only the given fields in one statement and return the fresh record."""
        assignments, values = _set_clause(fields)
        await self.db.execute(
            f"UPDATE love_streaks SET {assignments} WHERE id = ?",
            (*values, streak_id),
        )
        await self.db.commit()
        async with self.db.execute(
            f"SELECT {', '.join(STREAK_COLS)} FROM love_streaks WHERE id = ?",
            (streak_id,),
        ) as cur:
            row = await cur.fetchone()
        if row is None:
            raise LookupError(f"love streak {streak_id} does not exist")
        return _row_to_record(row)

    @store_retry
    async def find(self, where: str, params: tuple = ()) -> list[tuple[int, int]]:
        """(id, couple_id) of every record matching a SQL condition."""
        async with self.db.execute(
            f"SELECT id, couple_id FROM love_streaks WHERE {where} ORDER BY id", params,
        ) as cur:
            rows = await cur.fetchall()
        return [(row[0], row[1]) for row in rows]

    @store_retry
    async def update_if(self, streak_id: int, fields: dict, where: str, params: tuple = ()) -> bool:
        """Update one record only while it still matches ``where``; True if it changed."""
        assignments, values = _set_clause(fields)
        async with self.db.execute(
            f"UPDATE love_streaks SET {assignments} WHERE id = ? AND ({where})",
            (*values, streak_id, *params),
        ) as cur:
            changed = cur.rowcount > 0
        await self.db.commit()
        return changed
