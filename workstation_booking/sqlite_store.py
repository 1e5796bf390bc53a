from __future__ import annotations

from contextlib import contextmanager
import logging
from pathlib import Path
from typing import Any, Iterator

import sqlalchemy
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from .errors import StoreError, ValidationError
from .interval import TimeOfDay
from .records import Reservation, Resource

logger = logging.getLogger(__name__)

metadata = sqlalchemy.MetaData()

resources = sqlalchemy.Table(
    "resources",
    metadata,
    sqlalchemy.Column("resource_id", sqlalchemy.Integer, primary_key=True, autoincrement=False),
    sqlalchemy.Column("name", sqlalchemy.String, nullable=False),
    sqlalchemy.Column("status", sqlalchemy.String, nullable=False),
    sqlalchemy.Column("rating", sqlalchemy.Integer, nullable=True),
)

reservations = sqlalchemy.Table(
    "reservations",
    metadata,
    sqlalchemy.Column("reservation_id", sqlalchemy.Integer, primary_key=True, autoincrement=False),
    sqlalchemy.Column("resource_id", sqlalchemy.Integer, nullable=False),
    sqlalchemy.Column("client_name", sqlalchemy.String, nullable=False),
    sqlalchemy.Column("booking_date", sqlalchemy.String, nullable=False),
    sqlalchemy.Column("start_hour", sqlalchemy.Integer, nullable=False),
    sqlalchemy.Column("start_minute", sqlalchemy.Integer, nullable=False),
    sqlalchemy.Column("end_hour", sqlalchemy.Integer, nullable=False),
    sqlalchemy.Column("end_minute", sqlalchemy.Integer, nullable=False),
)


class SqliteBookingStore:
    """Persistence gateway backed by a single SQLite database file.

    The engine is created on construction and disposed by ``close()``.
    Calls made outside ``transaction()`` commit one by one.
    """

    def __init__(self, path: str | Path = "booking.db") -> None:
        self.path = Path(path)
        self._connection: Connection | None = None
        try:
            if str(self.path) == ":memory:":
                self.engine = sqlalchemy.create_engine("sqlite://", poolclass=StaticPool)
            else:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                self.engine = sqlalchemy.create_engine(f"sqlite:///{self.path}")
            metadata.create_all(bind=self.engine)
        except (OSError, SQLAlchemyError) as error:
            raise StoreError(f"Could not open database {self.path}: {error}") from error

    @contextmanager
    def transaction(self) -> Iterator["SqliteBookingStore"]:
        """Run the block in one database transaction; nested blocks join it."""
        if self._connection is not None:
            yield self
            return

        try:
            with self.engine.begin() as connection:
                self._connection = connection
                try:
                    yield self
                finally:
                    self._connection = None
        except SQLAlchemyError as error:
            raise StoreError(f"Database transaction failed: {error}") from error

    def close(self) -> None:
        self.engine.dispose()

    def _execute(self, statement: Any) -> sqlalchemy.CursorResult:
        if self._connection is None:
            raise StoreError("Database statement issued outside a transaction.")
        try:
            return self._connection.execute(statement)
        except SQLAlchemyError as error:
            raise StoreError(f"Database statement failed: {error}") from error

    def _select(self, statement: Any) -> list[Any]:
        with self.transaction():
            return list(self._execute(statement))

    def load_resources(self) -> list[Resource]:
        loaded: list[Resource] = []
        for row in self._select(sqlalchemy.select(resources).order_by(resources.c.resource_id)):
            try:
                loaded.append(Resource.from_dict({**row._mapping, "name": row.name or ""}))
            except ValidationError as error:
                logger.warning("Skipping stored resource %s: %s", row.resource_id, error)
        return loaded

    def load_reservations(self) -> list[Reservation]:
        loaded: list[Reservation] = []
        for row in self._select(sqlalchemy.select(reservations).order_by(reservations.c.reservation_id)):
            try:
                loaded.append(
                    Reservation(
                        reservation_id=row.reservation_id,
                        resource_id=row.resource_id,
                        client_name=row.client_name or "",
                        date=row.booking_date or "",
                        start=TimeOfDay(row.start_hour, row.start_minute),
                        end=TimeOfDay(row.end_hour, row.end_minute),
                    )
                )
            except ValidationError as error:
                logger.warning("Skipping stored reservation %s: %s", row.reservation_id, error)
        return loaded

    def save_resource(self, resource: Resource) -> None:
        values = {
            "resource_id": resource.resource_id,
            "name": resource.name,
            "status": resource.status,
            "rating": resource.rating,
        }
        with self.transaction():
            self._execute(_upsert(resources, resources.c.resource_id, values))

    def delete_resource(self, resource_id: int) -> None:
        with self.transaction():
            result = self._execute(resources.delete().where(resources.c.resource_id == resource_id))
            _require_rows(result, "resource", resource_id)

    def set_resource_status(self, resource_id: int, status: str) -> None:
        with self.transaction():
            result = self._execute(
                resources.update().where(resources.c.resource_id == resource_id).values(status=status)
            )
            _require_rows(result, "resource", resource_id)

    def save_reservation(self, reservation: Reservation) -> None:
        values = {
            "reservation_id": reservation.reservation_id,
            "resource_id": reservation.resource_id,
            "client_name": reservation.client_name,
            "booking_date": reservation.date,
            "start_hour": reservation.start.hour,
            "start_minute": reservation.start.minute,
            "end_hour": reservation.end.hour,
            "end_minute": reservation.end.minute,
        }
        with self.transaction():
            self._execute(_upsert(reservations, reservations.c.reservation_id, values))

    def delete_reservation(self, reservation_id: int) -> None:
        with self.transaction():
            result = self._execute(reservations.delete().where(reservations.c.reservation_id == reservation_id))
            _require_rows(result, "reservation", reservation_id)


def _upsert(table: sqlalchemy.Table, key: sqlalchemy.Column, values: dict[str, Any]) -> Any:
    statement = sqlite_insert(table).values(**values)
    return statement.on_conflict_do_update(
        index_elements=[key],
        set_={name: statement.excluded[name] for name in values if name != key.name},
    )


def _require_rows(result: sqlalchemy.CursorResult, kind: str, identifier: int) -> None:
    if result.rowcount == 0:
        raise StoreError(f"{kind} {identifier} is not stored")
