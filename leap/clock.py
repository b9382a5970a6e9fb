"""
Calendar abstraction.

Every "same calendar day" / "yesterday" decision goes through a Calendar so the
timezone and the notion of "today" can be pinned in tests.
"""
from datetime import date, datetime, timedelta, tzinfo
from typing import Callable, Optional, Union
from zoneinfo import ZoneInfo

DateLike = Union[date, datetime]


class Calendar:
    """Local calendar used for day-boundary comparisons."""

    def __init__(
        self,
        tz: Optional[tzinfo] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.tz = tz
        self._now = now

    @classmethod
    def from_name(cls, name: Optional[str]) -> "Calendar":
        return cls(tz=ZoneInfo(name) if name else None)

    @classmethod
    def fixed(cls, today: date, tz: Optional[tzinfo] = None) -> "Calendar":
        """Calendar whose clock is frozen at noon of ``today``."""
        moment = datetime(today.year, today.month, today.day, 12, 0, tzinfo=tz)
        return cls(tz=tz, now=lambda: moment)

    def now(self) -> datetime:
        if self._now is not None:
            return self._now()
        if self.tz is not None:
            return datetime.now(self.tz)
        return datetime.now().astimezone()

    def today(self) -> date:
        return self.day_of(self.now())

    def day_of(self, value: DateLike) -> date:
        """Calendar day of a date or datetime in this calendar's timezone."""
        if isinstance(value, datetime):
            if value.tzinfo is not None:
                # 未配置时区时按本机时区取日期
                value = value.astimezone(self.tz)
            return value.date()
        return value

    def same_day(self, a: DateLike, b: DateLike) -> bool:
        return self.day_of(a) == self.day_of(b)

    def is_yesterday(self, value: DateLike, today: DateLike) -> bool:
        return self.day_of(value) == self.day_of(today) - timedelta(days=1)

    def days_between(self, earlier: DateLike, later: DateLike) -> int:
        return (self.day_of(later) - self.day_of(earlier)).days
