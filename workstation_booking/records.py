from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import Any

from .errors import ValidationError
from .interval import TimeOfDay, parse_date, to_instant

STATUS_AVAILABLE = "available"
STATUS_BOOKED = "booked"
STATUS_MAINTENANCE = "maintenance"
RESOURCE_STATUSES = (STATUS_AVAILABLE, STATUS_BOOKED, STATUS_MAINTENANCE)


@dataclass(frozen=True)
class Resource:
    resource_id: int
    name: str
    status: str = STATUS_AVAILABLE
    rating: int | None = None

    def describe(self) -> str:
        text = f"Workstation [ID: {self.resource_id}, name: {self.name}, status: {self.status}]"
        if self.rating is not None:
            text += f" performance rating: {self.rating}"
        return text

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "resource_id": self.resource_id,
            "name": self.name,
            "status": self.status,
        }
        if self.rating is not None:
            payload["rating"] = self.rating
        return payload

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Resource":
        status = str(data.get("status") or STATUS_AVAILABLE)
        if status not in RESOURCE_STATUSES:
            raise ValidationError(f"Unknown resource status: {status!r}.")
        return Resource(
            resource_id=int(data["resource_id"]),
            name=str(data["name"]),
            status=status,
            rating=(int(data["rating"]) if data.get("rating") is not None else None),
        )


@dataclass(frozen=True)
class Reservation:
    reservation_id: int
    resource_id: int
    client_name: str
    date: str
    start: TimeOfDay
    end: TimeOfDay

    def __post_init__(self) -> None:
        if self.start.minutes_since_midnight >= self.end.minutes_since_midnight:
            raise ValidationError("Reservation start time must be earlier than end time.")

    @property
    def day(self) -> date | None:
        try:
            return parse_date(self.date)
        except ValidationError:
            return None

    @property
    def end_instant(self) -> datetime | None:
        return to_instant(self.date, self.end)

    def to_dict(self) -> dict[str, Any]:
        return {
            "reservation_id": self.reservation_id,
            "resource_id": self.resource_id,
            "client_name": self.client_name,
            "date": self.date,
            "start": str(self.start),
            "end": str(self.end),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> "Reservation":
        return Reservation(
            reservation_id=int(data["reservation_id"]),
            resource_id=int(data["resource_id"]),
            client_name=str(data["client_name"]),
            date=str(data["date"]),
            start=_time_from_text(str(data["start"])),
            end=_time_from_text(str(data["end"])),
        )


def _time_from_text(value: str) -> TimeOfDay:
    hour_text, _, minute_text = value.partition(":")
    try:
        hour, minute = int(hour_text), int(minute_text or 0)
    except ValueError as error:
        raise ValidationError(f"Time must use the HH:MM format, got {value!r}.") from error
    return TimeOfDay(hour, minute)
