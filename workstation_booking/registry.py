from __future__ import annotations

from dataclasses import replace
import logging
from typing import Any, Iterable, Iterator, Protocol

from .errors import DuplicateId, NotFound, ValidationError
from .records import (
    RESOURCE_STATUSES,
    STATUS_AVAILABLE,
    STATUS_BOOKED,
    STATUS_MAINTENANCE,
    Resource,
)
from .store import BookingStore, Snapshotting, mirrored

logger = logging.getLogger(__name__)


class ResourceDependent(Snapshotting, Protocol):
    def remove_for_resource(self, resource_id: int) -> list[Any]: ...


class ResourceRegistry:
    """In-memory resource records, mirrored to the store on every change."""

    def __init__(self, store: BookingStore) -> None:
        self.store = store
        self._resources: dict[int, Resource] = {}
        self._dependents: list[ResourceDependent] = []

    def __iter__(self) -> Iterator[Resource]:
        return iter(list(self._resources.values()))

    def __len__(self) -> int:
        return len(self._resources)

    def __contains__(self, resource_id: object) -> bool:
        return resource_id in self._resources

    def get(self, resource_id: int) -> Resource | None:
        return self._resources.get(resource_id)

    def require(self, resource_id: int) -> Resource:
        resource = self._resources.get(resource_id)
        if resource is None:
            raise NotFound("Resource", resource_id)
        return resource

    def snapshot(self) -> dict[int, Resource]:
        return dict(self._resources)

    def restore(self, snapshot: dict[int, Resource]) -> None:
        self._resources = dict(snapshot)

    def seed(self, resources: Iterable[Resource]) -> None:
        """Load already-persisted resources without writing them back."""
        for resource in resources:
            if resource.resource_id in self._resources:
                logger.warning("Ignoring duplicate stored resource %s", resource.resource_id)
                continue
            self._resources[resource.resource_id] = resource

    def register(self, resource: Resource) -> Resource:
        if resource.resource_id in self._resources:
            raise DuplicateId("Resource", resource.resource_id)
        if not resource.name.strip():
            raise ValidationError("Resource name must not be empty.")
        if resource.status not in RESOURCE_STATUSES:
            raise ValidationError(f"Unknown resource status: {resource.status!r}.")

        # A new resource has no reservations yet, so it cannot start booked.
        status = STATUS_MAINTENANCE if resource.status == STATUS_MAINTENANCE else STATUS_AVAILABLE
        registered = replace(resource, name=resource.name.strip(), status=status)

        with mirrored(self.store, self):
            self._resources[registered.resource_id] = registered
            self.store.save_resource(registered)

        logger.info("Registered resource %s (%s)", registered.resource_id, registered.name)
        return registered

    def attach(self, dependent: ResourceDependent) -> None:
        """Have ``dependent`` drop its rows whenever a resource is deregistered."""
        self._dependents.append(dependent)

    def deregister(self, resource_id: int) -> tuple[Resource, list[Any]]:
        """Remove a resource together with everything attached to it.

        Returns the removed resource and the rows the dependents cascaded away.
        """
        removed = self.require(resource_id)
        cascaded: list[Any] = []
        with mirrored(self.store, self, *self._dependents):
            for dependent in self._dependents:
                cascaded.extend(dependent.remove_for_resource(resource_id))
            del self._resources[resource_id]
            self.store.delete_resource(resource_id)

        logger.info("Deregistered resource %s", resource_id)
        return removed, cascaded

    def set_status(self, resource_id: int, status: str) -> Resource:
        current = self.require(resource_id)
        if status not in RESOURCE_STATUSES:
            raise ValidationError(f"Unknown resource status: {status!r}.")
        if current.status == status:
            return current

        updated = replace(current, status=status)
        with mirrored(self.store, self):
            self._resources[resource_id] = updated
            self.store.set_resource_status(resource_id, status)

        logger.info("Resource %s status %s -> %s", resource_id, current.status, status)
        return updated

    def recompute_status(self, resource_id: int, has_active_reservation: bool) -> Resource:
        current = self.require(resource_id)
        if current.status == STATUS_MAINTENANCE:
            return current
        return self.set_status(resource_id, STATUS_BOOKED if has_active_reservation else STATUS_AVAILABLE)
