from __future__ import annotations

from contextlib import contextmanager
from datetime import date, datetime
import logging
from typing import Callable, Iterator

from .config import BookingConfig
from .errors import ValidationError
from .interval import TimeOfDay
from .ledger import ReservationLedger
from .records import (
    RESOURCE_STATUSES,
    STATUS_AVAILABLE,
    STATUS_BOOKED,
    STATUS_MAINTENANCE,
    Reservation,
    Resource,
)
from .registry import ResourceRegistry
from .store import BookingStore, open_store
from .sweeper import SweepReport, sweep

logger = logging.getLogger(__name__)


class BookingService:
    def __init__(self, store: BookingStore, clock: Callable[[], datetime] | None = None) -> None:
        self.store = store
        self.clock: Callable[[], datetime] = clock or datetime.now
        self.registry = ResourceRegistry(store)
        self.ledger = ReservationLedger(self.registry, store)

    def _now(self, now: datetime | None) -> datetime:
        return now or self.clock()

    def load(self, now: datetime | None = None) -> SweepReport:
        resources = self.store.load_resources()
        reservations = self.store.load_reservations()
        self.registry.seed(resources)

        known = [row for row in reservations if row.resource_id in self.registry]
        for orphan in reservations:
            if orphan.resource_id not in self.registry:
                logger.warning(
                    "Ignoring stored reservation %s for unknown resource %s",
                    orphan.reservation_id,
                    orphan.resource_id,
                )
        self.ledger.seed(known)
        logger.info("Loaded %d resource(s) and %d reservation(s)", len(self.registry), len(self.ledger))

        return sweep(self.ledger, self._now(now), full=True)

    def sweep(self, now: datetime | None = None) -> SweepReport:
        return sweep(self.ledger, self._now(now))

    def list_resources(self, now: datetime | None = None) -> list[Resource]:
        self.sweep(now)
        return list(self.registry)

    def list_reservations(self, now: datetime | None = None, resource_id: int | None = None) -> list[Reservation]:
        self.sweep(now)
        rows = [row for row in self.ledger if resource_id is None or row.resource_id == resource_id]
        rows.sort(key=lambda row: (row.day or date.max, row.start, row.resource_id))
        return rows

    def get_reservation(self, reservation_id: int) -> Reservation:
        return self.ledger.require(reservation_id)

    def register_resource(self, resource_id: int, name: str, rating: int | None = None, status: str = STATUS_AVAILABLE) -> Resource:
        return self.registry.register(Resource(resource_id=resource_id, name=name, status=status, rating=rating))

    def deregister_resource(self, resource_id: int) -> tuple[Resource, list[Reservation]]:
        return self.registry.deregister(resource_id)

    def set_resource_status(self, resource_id: int, status: str, now: datetime | None = None) -> Resource:
        """Apply an operator status change.

        ``maintenance`` always applies. Any other status must agree with the
        reservations currently held for the resource.
        """
        current = self.registry.require(resource_id)
        if status not in RESOURCE_STATUSES:
            raise ValidationError(f"Unknown resource status: {status!r}.")
        if status == STATUS_MAINTENANCE:
            return self.registry.set_status(resource_id, status)

        has_active = self.ledger.has_active(resource_id, self._now(now))
        if has_active != (status == STATUS_BOOKED):
            expectation = "has" if has_active else "has no"
            raise ValidationError(f"Resource {resource_id} {expectation} active reservations and cannot be marked {status}.")
        if current.status == STATUS_MAINTENANCE:
            logger.info("Resource %s leaves maintenance", resource_id)
        return self.registry.set_status(resource_id, status)

    def add_reservation(
        self,
        reservation_id: int,
        resource_id: int,
        client_name: str,
        date: str,
        start: TimeOfDay,
        end: TimeOfDay,
        now: datetime | None = None,
    ) -> Reservation:
        candidate = Reservation(
            reservation_id=reservation_id,
            resource_id=resource_id,
            client_name=client_name,
            date=date,
            start=start,
            end=end,
        )
        return self.ledger.add(candidate, now=self._now(now))

    def update_reservation(
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
        return self.ledger.update(
            reservation_id,
            resource_id=resource_id,
            client_name=client_name,
            date=date,
            start=start,
            end=end,
            now=self._now(now),
        )

    def remove_reservation(self, reservation_id: int, now: datetime | None = None) -> Reservation:
        return self.ledger.remove(reservation_id, now=self._now(now))


@contextmanager
def open_service(
    config: BookingConfig | None = None,
    clock: Callable[[], datetime] | None = None,
) -> Iterator[BookingService]:
    """Open the configured store, load it, and release it on exit."""
    effective_config = config or BookingConfig.from_env()
    with open_store(effective_config) as store:
        service = BookingService(store, clock=clock)
        service.load()
        yield service
