from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from .errors import ValidationError

DATE_FORMAT = "%d-%m-%Y"


@dataclass(frozen=True, order=True)
class TimeOfDay:
    hour: int
    minute: int = 0

    def __post_init__(self) -> None:
        if not 0 <= self.hour <= 23:
            raise ValidationError(f"hour must be within 0-23, got {self.hour}.")
        if not 0 <= self.minute <= 59:
            raise ValidationError(f"minute must be within 0-59, got {self.minute}.")

    @property
    def minutes_since_midnight(self) -> int:
        return self.hour * 60 + self.minute

    def __str__(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


def parse_date(date_text: str) -> date:
    """Parse a ``DD-MM-YYYY`` day, raising ValidationError when it is not one."""
    try:
        return datetime.strptime(date_text.strip(), DATE_FORMAT).date()
    except (AttributeError, ValueError) as error:
        raise ValidationError(f"Date must use the DD-MM-YYYY format, got {date_text!r}.") from error


def to_instant(date_text: str, time: TimeOfDay) -> datetime | None:
    """Combine a day and a time of day into one comparable point.

    Returns None when the day cannot be parsed. Such an instant is
    unrepresentable and callers must not treat it as past or future.
    """
    try:
        day = parse_date(date_text)
    except ValidationError:
        return None
    return datetime(day.year, day.month, day.day, time.hour, time.minute)


def overlaps(a_start: Any, a_end: Any, b_start: Any, b_end: Any) -> bool:
    """Return True when two intervals overlap by even one minute.

    Intervals are treated as half-open ranges: [start, end)
    so touching boundaries (e.g. 10:00-11:00 and 11:00-12:00) do not overlap.
    """
    if a_start >= a_end:
        raise ValidationError("a_start must be earlier than a_end.")
    if b_start >= b_end:
        raise ValidationError("b_start must be earlier than b_end.")

    return a_start < b_end and b_start < a_end


def is_before(date_text: str, time: TimeOfDay, reference: datetime) -> bool:
    instant = to_instant(date_text, time)
    if instant is None:
        return False
    return instant < reference
