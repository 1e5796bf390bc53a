from __future__ import annotations

from contextlib import AbstractContextManager, contextmanager
import logging
from typing import Any, Iterator, Protocol

from .config import BookingConfig
from .errors import StoreError, ValidationError
from .records import Reservation, Resource
from .sqlite_store import SqliteBookingStore
from .yaml_store import YamlBookingStore

logger = logging.getLogger(__name__)


class BookingStore(Protocol):
    def load_resources(self) -> list[Resource]: ...

    def load_reservations(self) -> list[Reservation]: ...

    def save_resource(self, resource: Resource) -> None: ...

    def delete_resource(self, resource_id: int) -> None: ...

    def set_resource_status(self, resource_id: int, status: str) -> None: ...

    def save_reservation(self, reservation: Reservation) -> None: ...

    def delete_reservation(self, reservation_id: int) -> None: ...

    def transaction(self) -> AbstractContextManager[Any]: ...

    def close(self) -> None: ...


class Snapshotting(Protocol):
    def snapshot(self) -> Any: ...

    def restore(self, snapshot: Any) -> None: ...


@contextmanager
def mirrored(store: BookingStore, *holders: Snapshotting) -> Iterator[None]:
    """Run an in-memory mutation inside one store transaction.

    If anything fails before the transaction commits, every holder is put
    back to the state it had on entry and the store discards its writes.
    """
    snapshots = [holder.snapshot() for holder in holders]
    try:
        with store.transaction():
            yield
    except Exception as error:
        for holder, snapshot in zip(holders, snapshots):
            holder.restore(snapshot)
        if isinstance(error, StoreError):
            logger.warning("Store rejected mutation, in-memory state rolled back: %s", error)
        raise


def create_store(config: BookingConfig) -> BookingStore:
    if config.backend == "yaml":
        return YamlBookingStore(config.data_dir)
    if config.backend == "sqlite":
        return SqliteBookingStore(config.resolved_sqlite_path)
    raise ValidationError(f"Unsupported storage backend: {config.backend!r}.")


@contextmanager
def open_store(config: BookingConfig) -> Iterator[BookingStore]:
    store = create_store(config)
    try:
        yield store
    finally:
        store.close()
