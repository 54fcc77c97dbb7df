import dataclasses
import enum
import logging
from dataclasses import dataclass
from typing import NamedTuple, Optional

from clock import CivilClock, CivilDay, month_of
from couples import Couple, CoupleDirectory
from streak_store import StreakRecord, StreakStore, TransientStoreFailure

log = logging.getLogger(__name__)

MAX_RECOVERIES = 3


class CheckInStatus(str, enum.Enum):
    FIRST_COMPLETED = "first_completed"
    BOTH_COMPLETED = "both_completed"
    ALREADY_COMPLETED = "already_completed"
    RECOVERED = "streak_recovered"
    LOST = "streak_lost"


class NotInRelationship(Exception):
    """The participant has no couple in this guild."""

    def __init__(self, participant_id: int, scope: int):
        super().__init__(f"user {participant_id} is not married in guild {scope}")
        self.participant_id = participant_id
        self.scope = scope


@dataclass
class CheckInResult:
    status: CheckInStatus
    record: StreakRecord
    couple: Couple
    message: str
    new_streak: Optional[int] = None
    recoveries_remaining: Optional[int] = None
    is_last_recovery: Optional[bool] = None


class Transition(NamedTuple):
    status: CheckInStatus
    fields: dict
    new_streak: Optional[int] = None
    recoveries_remaining: Optional[int] = None
    is_last_recovery: Optional[bool] = None


def slot_fields(first_slot: bool) -> tuple[str, str]:
    """(caller's flag column, partner's flag column)."""
    if first_slot:
        return "user1_completed_today", "user2_completed_today"
    return "user2_completed_today", "user1_completed_today"


def done_today(record: StreakRecord, column: str, day: CivilDay) -> bool:
    """A completed flag only counts on the civil day it was written."""
    return getattr(record, column) and record.completed_on == day.today


def missed_a_day(record: StreakRecord, day: CivilDay) -> bool:
    last = record.last_completed_date
    return last is not None and last not in (day.yesterday, day.today)


def budget_is_stale(record: StreakRecord, day: CivilDay) -> bool:
    return month_of(record.recovery_reset_date) != day.month


def decide(record: StreakRecord, first_slot: bool, day: CivilDay) -> Transition:
    """Work out what a check-in does to ``record`` without touching storage.

    The record's budget must already be rolled over to ``day.month``.
    """
    mine, theirs = slot_fields(first_slot)

    if done_today(record, mine, day):
        return Transition(CheckInStatus.ALREADY_COMPLETED, {})

    if missed_a_day(record, day):
        # Whatever partial pairing existed for the missed day is dropped; today
        # restarts with only the caller checked in.
        restart = {mine: True, theirs: False, "completed_on": day.today, "last_completed_date": None}
        if record.recoveries_used_this_month < MAX_RECOVERIES:
            used = record.recoveries_used_this_month + 1
            remaining = MAX_RECOVERIES - used
            return Transition(
                CheckInStatus.RECOVERED,
                {**restart, "recoveries_used_this_month": used},
                recoveries_remaining=remaining,
                is_last_recovery=remaining == 0,
            )
        return Transition(CheckInStatus.LOST, {**restart, "current_streak": 0})

    if done_today(record, theirs, day):
        new_streak = record.current_streak + 1
        return Transition(
            CheckInStatus.BOTH_COMPLETED,
            {
                mine: True,
                "completed_on": day.today,
                "current_streak": new_streak,
                "best_streak": max(record.best_streak, new_streak),
                "total_days": record.total_days + 1,
                "last_completed_date": day.today,
            },
            new_streak=new_streak,
        )
    return Transition(
        CheckInStatus.FIRST_COMPLETED, {mine: True, theirs: False, "completed_on": day.today}
    )


def check_invariants(record: StreakRecord):
    assert record.current_streak >= 0, f"negative streak on {record.couple_id}"
    assert record.current_streak <= record.best_streak, f"streak above best on {record.couple_id}"
    assert record.total_days >= 0, f"negative total on {record.couple_id}"
    assert 0 <= record.recoveries_used_this_month <= MAX_RECOVERIES, \
        f"recovery budget out of range on {record.couple_id}"


def describe(transition: Transition) -> str:
    if transition.status is CheckInStatus.FIRST_COMPLETED:
        return "You checked in first! Waiting for your partner to send their love today."
    if transition.status is CheckInStatus.BOTH_COMPLETED:
        return f"Streak maintained! You two are on a **{transition.new_streak}** day streak."
    if transition.status is CheckInStatus.ALREADY_COMPLETED:
        return "You already sent your love today. Come back tomorrow!"
    if transition.status is CheckInStatus.RECOVERED:
        return (
            "You missed a day, but your streak was saved. "
            f"Recoveries left this month: **{transition.recoveries_remaining}**."
        )
    return "You missed a day and had no recoveries left. Your streak was lost."


class StreakEngine:
    """Daily love-streak check-ins for married couples.

    There is no stored state column; each call derives where the couple stands
    from the two completed-today flags, the day they were stamped with
    (``completed_on``), ``last_completed_date`` and today's civil date. Flags
    stamped on an earlier day count as cleared even if no sweep has run.
    """

    def __init__(self, store: StreakStore, couples: CoupleDirectory, clock: CivilClock):
        self.store = store
        self.couples = couples
        self.clock = clock

    async def check_in(self, participant_id: int, scope: int) -> CheckInResult:
        couple = await self.couples.get_couple_by_participant(participant_id, scope)
        if couple is None:
            raise NotInRelationship(participant_id, scope)

        async with self.store.couple_lock(couple.id):
            day = self.clock.snapshot()
            record = await self.store.get(couple.id)
            if record is None:
                record = await self.store.create(couple.id)
            record = await self._roll_recovery_budget(record, day)

            transition = decide(record, couple.is_first(participant_id), day)
            if transition.fields:
                check_invariants(dataclasses.replace(record, **transition.fields))
                record = await self.store.update(record.id, transition.fields)

        if transition.status is CheckInStatus.RECOVERED:
            log.info(
                "Couple %d recovered a missed day (%d left this month)",
                couple.id, transition.recoveries_remaining,
            )
        elif transition.status is CheckInStatus.LOST:
            log.info("Couple %d lost their streak (best %d)", couple.id, record.best_streak)

        return CheckInResult(
            status=transition.status,
            record=record,
            couple=couple,
            message=describe(transition),
            new_streak=transition.new_streak,
            recoveries_remaining=transition.recoveries_remaining,
            is_last_recovery=transition.is_last_recovery,
        )

    async def _roll_recovery_budget(self, record: StreakRecord, day: CivilDay) -> StreakRecord:
        """Persist a fresh recovery budget when the civil month has changed."""
        if not budget_is_stale(record, day):
            return record
        return await self.store.update(
            record.id, {"recoveries_used_this_month": 0, "recovery_reset_date": day.today}
        )

    async def get_streak(self, couple_id: int) -> Optional[StreakRecord]:
        try:
            return await self.store.get(couple_id)
        except TransientStoreFailure:
            log.exception("Could not read love streak for couple %d", couple_id)
            return None

    async def get_streak_by_participant(self, participant_id: int, scope: int) -> Optional[StreakRecord]:
        couple = await self.couples.get_couple_by_participant(participant_id, scope)
        if couple is None:
            return None
        return await self.get_streak(couple.id)
