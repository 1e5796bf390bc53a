from __future__ import annotations

from dataclasses import replace
from datetime import datetime
import logging
from typing import Any, Iterable, Iterator

from .errors import ConflictError, DuplicateId, NotFound, ValidationError
from .interval import TimeOfDay, is_before, overlaps, parse_date
from .records import Reservation, Resource
from .registry import ResourceRegistry
from .store import BookingStore, mirrored

logger = logging.getLogger(__name__)


class ReservationLedger:
    """The authoritative in-memory set of reservations.

    Every accepted insert, update or removal is checked against the other
    reservations on the same resource and day, mirrored to the store, and
    followed by a status recomputation of the resources it touched. A
    failure at any step leaves both this ledger and the registry exactly as
    they were before the call.
    """

    def __init__(self, registry: ResourceRegistry, store: BookingStore | None = None) -> None:
        self.registry = registry
        self.store = store or registry.store
        self._reservations: dict[int, Reservation] = {}
        registry.attach(self)

    def __iter__(self) -> Iterator[Reservation]:
        return iter(list(self._reservations.values()))

    def __len__(self) -> int:
        return len(self._reservations)

    def __contains__(self, reservation_id: object) -> bool:
        return reservation_id in self._reservations

    def get(self, reservation_id: int) -> Reservation | None:
        return self._reservations.get(reservation_id)

    def require(self, reservation_id: int) -> Reservation:
        reservation = self._reservations.get(reservation_id)
        if reservation is None:
            raise NotFound("Reservation", reservation_id)
        return reservation

    def snapshot(self) -> dict[int, Reservation]:
        return dict(self._reservations)

    def restore(self, snapshot: dict[int, Reservation]) -> None:
        self._reservations = dict(snapshot)

    def seed(self, reservations: Iterable[Reservation]) -> None:
        """Load already-persisted reservations without writing them back."""
        for reservation in reservations:
            if reservation.reservation_id in self._reservations:
                logger.warning("Ignoring duplicate stored reservation %s", reservation.reservation_id)
                continue
            self._reservations[reservation.reservation_id] = reservation

    def for_resource(self, resource_id: int) -> list[Reservation]:
        return [row for row in self._reservations.values() if row.resource_id == resource_id]

    def has_active(self, resource_id: int, now: datetime) -> bool:
        for reservation in self.for_resource(resource_id):
            end_instant = reservation.end_instant
            # An unrepresentable end is never judged to be in the past.
            if end_instant is None or end_instant >= now:
                return True
        return False

    def refresh_status(self, resource_id: int, now: datetime | None = None) -> Resource:
        effective_now = now or datetime.now()
        return self.registry.recompute_status(resource_id, self.has_active(resource_id, effective_now))

    def find_conflict(self, candidate: Reservation, exclude_id: int | None = None) -> Reservation | None:
        day = candidate.day
        for existing in self._reservations.values():
            if existing.reservation_id == exclude_id:
                continue
            if existing.resource_id != candidate.resource_id or existing.day != day:
                continue
            if overlaps(candidate.start, candidate.end, existing.start, existing.end):
                return existing
        return None

    def _validate(self, candidate: Reservation, now: datetime, exclude_id: int | None = None) -> None:
        if not candidate.client_name:
            raise ValidationError("Client name must not be empty.")
        self.registry.require(candidate.resource_id)
        parse_date(candidate.date)
        if is_before(candidate.date, candidate.end, now):
            raise ValidationError("Reservation cannot end in the past.")

        conflict = self.find_conflict(candidate, exclude_id=exclude_id)
        if conflict is not None:
            raise ConflictError(conflict.reservation_id)

    def add(self, candidate: Reservation, now: datetime | None = None) -> Reservation:
        effective_now = now or datetime.now()
        if candidate.reservation_id in self._reservations:
            raise DuplicateId("Reservation", candidate.reservation_id)

        candidate = replace(candidate, client_name=candidate.client_name.strip())
        self._validate(candidate, effective_now)

        with mirrored(self.store, self, self.registry):
            self._reservations[candidate.reservation_id] = candidate
            self.store.save_reservation(candidate)
            self.registry.recompute_status(candidate.resource_id, True)

        logger.info(
            "Accepted reservation %s on resource %s for %s %s-%s",
            candidate.reservation_id,
            candidate.resource_id,
            candidate.date,
            candidate.start,
            candidate.end,
        )
        return candidate

    def remove(self, reservation_id: int, now: datetime | None = None) -> Reservation:
        effective_now = now or datetime.now()
        removed = self.require(reservation_id)

        with mirrored(self.store, self, self.registry):
            del self._reservations[reservation_id]
            self.store.delete_reservation(reservation_id)
            self.refresh_status(removed.resource_id, effective_now)

        logger.info("Removed reservation %s", reservation_id)
        return removed

    def update(
        self,
        reservation_id: int,
        *,
        resource_id: int | None = None,
        client_name: str | None = None,
        date: str | None = None,
        start: TimeOfDay | None = None,
        end: TimeOfDay | None = None,
        now: datetime | None = None,
    ) -> Reservation:
        effective_now = now or datetime.now()
        current = self.require(reservation_id)

        changes: dict[str, Any] = {
            "resource_id": resource_id,
            "client_name": client_name.strip() if client_name is not None else None,
            "date": date,
            "start": start,
            "end": end,
        }
        candidate = replace(current, **{field: value for field, value in changes.items() if value is not None})
        self._validate(candidate, effective_now, exclude_id=reservation_id)

        with mirrored(self.store, self, self.registry):
            self._reservations[reservation_id] = candidate
            self.store.save_reservation(candidate)
            if candidate.resource_id != current.resource_id:
                self.refresh_status(current.resource_id, effective_now)
            self.refresh_status(candidate.resource_id, effective_now)

        logger.info("Updated reservation %s", reservation_id)
        return candidate

    def discard(self, reservations: Iterable[Reservation]) -> list[Reservation]:
        """Delete reservations without touching resource status.

        Callers refresh the affected resources themselves, once each.
        """
        doomed = [self.require(row.reservation_id) for row in reservations]
        with mirrored(self.store, self):
            for reservation in doomed:
                del self._reservations[reservation.reservation_id]
                self.store.delete_reservation(reservation.reservation_id)
        return doomed

    def remove_for_resource(self, resource_id: int) -> list[Reservation]:
        removed = self.discard(self.for_resource(resource_id))
        if removed:
            logger.info("Cascaded %d reservation(s) of resource %s", len(removed), resource_id)
        return removed
