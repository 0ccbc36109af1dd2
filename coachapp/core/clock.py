"""
Часы, привязанные к одной именованной таймзоне.

Все вычисления "какой сегодня день" и "понедельник ли сейчас" идут через Clock,
а не через системное время хоста: так все пользователи программы переходят
на следующий день одновременно, а тесты подставляют фиксированный момент.
"""
from datetime import date, datetime, time, timedelta
from typing import Optional

import pytz

MONDAY = 0


class Clock:
    def __init__(self, tz_name: str = "UTC"):
        self.tz_name = tz_name
        self.tz = pytz.timezone(tz_name)

    def _utcnow(self) -> datetime:
        return datetime.now(pytz.utc)

    def now(self) -> datetime:
        return self._utcnow().astimezone(self.tz)

    def today(self) -> date:
        return self.now().date()

    def start_of_day(self, day: Optional[date] = None) -> datetime:
        """Полночь указанного (или текущего) дня в таймзоне часов, aware datetime."""
        day = day or self.today()
        return self.tz.localize(datetime.combine(day, time.min))

    def is_monday(self) -> bool:
        return self.today().weekday() == MONDAY

    def local_date(self, moment: datetime) -> date:
        """Календарная дата момента времени в таймзоне часов."""
        if moment.tzinfo is None:
            moment = pytz.utc.localize(moment)
        return moment.astimezone(self.tz).date()

    def week_start(self) -> date:
        today = self.today()
        return today - timedelta(days=today.weekday())

    def with_timezone(self, tz_name: Optional[str]) -> "Clock":
        """Те же часы в другой таймзоне; неизвестную таймзону игнорируем."""
        if not tz_name or tz_name == self.tz_name:
            return self
        try:
            pytz.timezone(tz_name)
        except pytz.UnknownTimeZoneError:
            return self
        clone = Clock.__new__(type(self))
        clone.__dict__.update(self.__dict__)
        clone.tz_name = tz_name
        clone.tz = pytz.timezone(tz_name)
        return clone


class FixedClock(Clock):
    """Часы с замороженным моментом времени (для тестов)."""

    def __init__(self, instant: datetime, tz_name: str = "UTC"):
        super().__init__(tz_name)
        if instant.tzinfo is None:
            instant = self.tz.localize(instant)
        self.instant = instant

    def _utcnow(self) -> datetime:
        return self.instant.astimezone(pytz.utc)

    def advance(self, **kwargs) -> None:
        self.instant = self.instant + timedelta(**kwargs)
