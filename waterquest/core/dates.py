"""Calendar helpers - Pure functions over local wall-clock datetimes."""

from datetime import datetime, timedelta


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def is_same_day(a: datetime, b: datetime) -> bool:
    return a.date() == b.date()


def is_yesterday_of(moment: datetime, other: datetime) -> bool:
    """True if `moment` falls on the calendar day before `other`."""
    return moment.date() == other.date() - timedelta(days=1)


def minute_of_day(moment: datetime) -> int:
    return moment.hour * 60 + moment.minute


def at_minute(moment: datetime, minutes: int) -> datetime:
    """Datetime on `moment`'s calendar day at the given minutes since midnight.

    1440 resolves to the following midnight.
    """
    return start_of_day(moment) + timedelta(minutes=minutes)
