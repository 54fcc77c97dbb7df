import logging

from streak_store import StreakStore

log = logging.getLogger(__name__)

FLAGS_SET = "(user1_completed_today = 1 OR user2_completed_today = 1)"
CLEARED_FLAGS = {"user1_completed_today": False, "user2_completed_today": False}


class StreakMaintenance:
    """Sweeps run by the scheduler; all of them are safe to repeat.

    Counts only include records the sweep actually changed, so a second run on
    the same day reports 0 unless someone checked in between runs. Each record
    is rewritten under its couple lock and only while it still matches the
    sweep's condition, so a sweep never lands inside a check-in.
    """

    def __init__(self, store: StreakStore):
        self.store = store

    async def _sweep(self, where: str, params: tuple, fields: dict) -> int:
        count = 0
        for streak_id, couple_id in await self.store.find(where, params):
            async with self.store.couple_lock(couple_id):
                if await self.store.update_if(streak_id, fields, where, params):
                    count += 1
        return count

    async def reset_daily_completions(self) -> int:
        count = await self._sweep(FLAGS_SET, (), CLEARED_FLAGS)
        log.info("Daily reset: %d love streak(s) cleared", count)
        return count

    async def reset_monthly_recoveries(self) -> int:
        today = self.store.clock.today()
        count = await self._sweep(
            "recoveries_used_this_month != 0 OR recovery_reset_date != ?",
            (today,),
            {"recoveries_used_this_month": 0, "recovery_reset_date": today},
        )
        log.info("Monthly reset: %d recovery budget(s) refilled", count)
        return count

    async def catch_up(self) -> tuple[int, int]:
        """Apply whatever sweeps were missed while the bot was down or the store was busy.

        Only flags stamped before today and budgets from an earlier month are
        touched; check-ins made today are kept. Returns (flags cleared, budgets
        refilled).
        """
        day = self.store.clock.snapshot()
        cleared = await self._sweep(
            f"{FLAGS_SET} AND (completed_on IS NULL OR completed_on < ?)",
            (day.today,),
            CLEARED_FLAGS,
        )
        refilled = await self._sweep(
            "substr(recovery_reset_date, 1, 7) != ?",
            (day.month,),
            {"recoveries_used_this_month": 0, "recovery_reset_date": day.today},
        )
        if cleared or refilled:
            log.info("Catch-up: %d stale check-in(s) cleared, %d budget(s) refilled", cleared, refilled)
        return cleared, refilled
