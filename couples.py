import datetime
from dataclasses import dataclass
from typing import Optional

import aiosqlite

COUPLE_COLS = ["id", "guild_id", "user1_id", "user2_id", "married_at"]


@dataclass(frozen=True)
class Couple:
    id: int
    guild_id: int
    user1_id: int
    user2_id: int
    married_at: str

    def is_first(self, participant_id: int) -> bool:
        """True if the participant holds the first slot of the couple."""
        return self.user1_id == participant_id


class CoupleDirectory:
    """Couple lookup over the marriages table.

    Marriages belong to the relationship side of the bot; streak code only reads
    them. ``link`` is for setup scripts and tests.
    """

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def create_table(self):
        await self.db.execute(
            """CREATE TABLE IF NOT EXISTS marriages (
                id         INTEGER PRIMARY KEY AUTOINCREMENT,
                guild_id   INTEGER NOT NULL,
                user1_id   INTEGER NOT NULL,
                user2_id   INTEGER NOT NULL,
                married_at TEXT NOT NULL
            )"""
        )
        await self.db.commit()

    async def get_couple_by_participant(self, participant_id: int, scope: int) -> Optional[Couple]:
        async with self.db.execute(
            "SELECT id, guild_id, user1_id, user2_id, married_at FROM marriages "
            "WHERE guild_id = ? AND (user1_id = ? OR user2_id = ?) LIMIT 1",
            (scope, participant_id, participant_id),
        ) as cur:
            row = await cur.fetchone()
        if row:
            return Couple(**{COUPLE_COLS[i]: row[i] for i in range(len(COUPLE_COLS))})
        return None

    async def link(self, scope: int, user1_id: int, user2_id: int) -> Couple:
        if user1_id == user2_id:
            raise ValueError("a couple needs two distinct participants")
        married_at = datetime.datetime.now(datetime.timezone.utc).isoformat()
        async with self.db.execute(
            "INSERT INTO marriages (guild_id, user1_id, user2_id, married_at) VALUES (?, ?, ?, ?)",
            (scope, user1_id, user2_id, married_at),
        ) as cur:
            couple_id = cur.lastrowid
        await self.db.commit()
        return Couple(couple_id, scope, user1_id, user2_id, married_at)
