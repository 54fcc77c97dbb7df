import datetime
from typing import Callable, NamedTuple, Optional

UTC_OFFSET_HOURS = 7
CIVIL_TZ = datetime.timezone(datetime.timedelta(hours=UTC_OFFSET_HOURS))


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class CivilDay(NamedTuple):
    today: str
    yesterday: str
    month: str


class CivilClock:
    """Civil dates at a fixed UTC+7 offset, regardless of the host timezone.

    Dates are ``YYYY-MM-DD`` strings and months are ``YYYY-MM`` strings, so they
    compare and sort the same way they are stored.
    """

    def __init__(self, now: Optional[Callable[[], datetime.datetime]] = None):
        self._now = now or _utcnow

    def local_now(self) -> datetime.datetime:
        instant = self._now()
        if instant.tzinfo is None:
            instant = instant.replace(tzinfo=datetime.timezone.utc)
        return instant.astimezone(CIVIL_TZ)

    def snapshot(self) -> CivilDay:
        """today/yesterday/month read from one instant, so they never disagree."""
        local = self.local_now()
        yesterday = local.date() - datetime.timedelta(days=1)
        return CivilDay(local.date().isoformat(), yesterday.isoformat(), local.strftime("%Y-%m"))

    def today(self) -> str:
        return self.snapshot().today

    def yesterday(self) -> str:
        return self.snapshot().yesterday

    def current_month(self) -> str:
        return self.snapshot().month


def month_of(civil_date: str) -> str:
    return civil_date[:7]
