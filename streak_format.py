from dataclasses import dataclass

from clock import CivilDay
from couples import Couple
from streak_engine import MAX_RECOVERIES, budget_is_stale
from streak_store import StreakRecord


@dataclass(frozen=True)
class StreakBox:
    participants: list[tuple[int, bool]]  # (user_id, completed today)
    current_streak: int

    @property
    def all_completed(self) -> bool:
        return all(done for _, done in self.participants)


def format_streak_box(record: StreakRecord, couple: Couple) -> StreakBox:
    return StreakBox(
        participants=[
            (couple.user1_id, record.user1_completed_today),
            (couple.user2_id, record.user2_completed_today),
        ],
        current_streak=record.current_streak,
    )


def format_streak_summary(record: StreakRecord, day: CivilDay) -> dict:
    """Counters for profile-style views.

    A budget last reset in an earlier month is reported as full, since the
    next check-in rolls it over before using it.
    """
    used = 0 if budget_is_stale(record, day) else record.recoveries_used_this_month
    return {
        "current_streak": record.current_streak,
        "best_streak": record.best_streak,
        "total_days": record.total_days,
        "recoveries_left": MAX_RECOVERIES - used,
        "last_completed_date": record.last_completed_date,
    }
