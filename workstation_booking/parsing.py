import re
from dataclasses import dataclass

from .errors import ValidationError
from .interval import DATE_FORMAT, TimeOfDay, parse_date as _parse_day

_DATE_RE = re.compile(r"(?<!\d)(?P<date>\d{1,2}[-./]\d{1,2}[-./]\d{4})(?!\d)")
_TIME_RE = re.compile(r"(?<!\d)(?P<time>(?:[01]?\d|2[0-3]):[0-5]\d)(?!\d)")
_STRICT_TIME_RE = re.compile(r"^(?P<hour>[01]?\d|2[0-3]):(?P<minute>[0-5]\d)$")
_RESOURCE_ID_RE = re.compile(r"(?<![\d:])#?(?P<resource_id>\d+)(?![\d:])")


@dataclass(frozen=True)
class ParsedReservationRequest:
    resource_id: int
    date: str
    start: TimeOfDay
    end: TimeOfDay
    raw_text: str


def parse_date(date_text: str) -> str:
    """Return ``date_text`` as a zero-padded ``DD-MM-YYYY`` string."""
    if not date_text or not date_text.strip():
        raise ValidationError("date must not be empty")
    normalized = re.sub(r"[./]", "-", date_text.strip())
    return _parse_day(normalized).strftime(DATE_FORMAT)


def parse_time(time_text: str) -> TimeOfDay:
    match = _STRICT_TIME_RE.match((time_text or "").strip())
    if not match:
        raise ValidationError(f"Time must use the 24-hour HH:MM format, got {time_text!r}.")
    return TimeOfDay(int(match.group("hour")), int(match.group("minute")))


def parse_reservation_request(text: str) -> ParsedReservationRequest:
    if not text or not text.strip():
        raise ValidationError("text must not be empty")

    date_match = _DATE_RE.search(text)
    if not date_match:
        raise ValidationError("Could not find a date in text. Expected format: DD-MM-YYYY")

    time_matches = list(_TIME_RE.finditer(text))
    if len(time_matches) < 2:
        raise ValidationError("Could not find start/end time in text. Expected format: HH:MM")

    date_text = parse_date(date_match.group("date"))
    start, end = parse_time(time_matches[0].group("time")), parse_time(time_matches[1].group("time"))
    if start >= end:
        raise ValidationError("start time must be earlier than end time")

    remainder = _blank_spans(text, [date_match.span()] + [match.span() for match in time_matches[:2]])
    resource_match = _RESOURCE_ID_RE.search(remainder)
    if not resource_match:
        raise ValidationError("Could not find a workstation id in text.")

    return ParsedReservationRequest(
        resource_id=int(resource_match.group("resource_id")),
        date=date_text,
        start=start,
        end=end,
        raw_text=text,
    )


def _blank_spans(text: str, spans: list[tuple[int, int]]) -> str:
    characters = list(text)
    for start, end in spans:
        characters[start:end] = " " * (end - start)
    return "".join(characters)
