from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
import logging
from pathlib import Path
import shutil
from typing import Any, Callable, Iterator, TypeVar

import yaml

from .errors import StoreError, ValidationError
from .records import Reservation, Resource

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class _PendingWrites:
    resources: list[dict[str, Any]]
    reservations: list[dict[str, Any]]
    events: list[dict[str, Any]] = field(default_factory=list)
    dirty: set[str] = field(default_factory=set)


class YamlBookingStore:
    def __init__(self, base_dir: str | Path = "data") -> None:
        self.base_dir = Path(base_dir)
        self.resources_file = self.base_dir / "resources.yaml"
        self.reservations_file = self.base_dir / "reservations.yaml"
        self.log_file = self.base_dir / "booking_events.yaml"
        self._pending: _PendingWrites | None = None
        self._ensure_files()

    def _ensure_files(self) -> None:
        try:
            self.base_dir.mkdir(parents=True, exist_ok=True)
            for path in (self.resources_file, self.reservations_file, self.log_file):
                if not path.exists():
                    path.write_text("[]\n", encoding="utf-8")
        except OSError as error:
            raise StoreError(f"Failed to prepare data directory: {self.base_dir}") from error

    def _read_yaml_list(self, path: Path) -> list[dict[str, Any]]:
        try:
            payload = yaml.safe_load(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            path.write_text("[]\n", encoding="utf-8")
            return []
        except (OSError, UnicodeDecodeError, yaml.YAMLError) as error:
            self._recover_corrupted_yaml(path, error)
            return []

        if payload is None:
            return []
        if not isinstance(payload, list):
            self._recover_corrupted_yaml(path, ValueError("top-level YAML is not a list"))
            return []

        sanitized: list[dict[str, Any]] = []
        for index, row in enumerate(payload):
            if isinstance(row, dict):
                sanitized.append(row)
            else:
                self._skip_row(path, index, "row is not a mapping")
        return sanitized

    def _write_yaml_files(self, targets: dict[Path, list[dict[str, Any]]]) -> None:
        """Replace every target file, or none of them.

        Originals are copied aside first. If any replace fails, the files
        already replaced are copied back before StoreError is raised.
        """
        temp_paths = {path: path.with_suffix(path.suffix + ".tmp") for path in targets}
        backup_paths = {path: path.with_suffix(path.suffix + ".bak") for path in targets}
        replaced: list[Path] = []
        try:
            for path, rows in targets.items():
                temp_paths[path].write_text(yaml.safe_dump(rows, allow_unicode=True, sort_keys=False), encoding="utf-8")
            for path in targets:
                if path.exists():
                    shutil.copy2(path, backup_paths[path])
            for path, temp_path in temp_paths.items():
                temp_path.replace(path)
                replaced.append(path)
        except OSError as error:
            self._restore_backups(replaced, backup_paths)
            names = ", ".join(path.name for path in targets)
            raise StoreError(f"Failed to write YAML file(s): {names}") from error
        finally:
            for leftover in [*temp_paths.values(), *backup_paths.values()]:
                if leftover.exists():
                    leftover.unlink(missing_ok=True)

    def _restore_backups(self, replaced: list[Path], backup_paths: dict[Path, Path]) -> None:
        for path in replaced:
            try:
                if backup_paths[path].exists():
                    shutil.copy2(backup_paths[path], path)
                else:
                    path.unlink(missing_ok=True)
            except OSError as restore_error:
                logger.error("Could not restore %s after a failed commit: %s", path.name, restore_error)

    def _recover_corrupted_yaml(self, path: Path, error: Exception) -> None:
        timestamp = datetime.now().strftime("%Y%m%d%H%M%S")
        backup_path = path.with_name(f"{path.stem}.corrupt.{timestamp}{path.suffix}")
        try:
            if path.exists():
                shutil.copy2(path, backup_path)
        except OSError as copy_error:
            logger.warning("Could not back up corrupted %s: %s", path.name, copy_error)

        logger.warning("Recovered corrupted %s (%s)", path.name, error)
        path.write_text("[]\n", encoding="utf-8")
        if path != self.log_file:
            self._log_event(
                "YAML_RECOVERED",
                {
                    "file": str(path.name),
                    "backup": str(backup_path.name),
                    "reason": str(error),
                },
            )

    def _skip_row(self, path: Path, index: int, reason: str) -> None:
        logger.warning("Skipping row %d of %s: %s", index, path.name, reason)
        self._log_event(
            "YAML_ROW_SKIPPED",
            {
                "file": str(path.name),
                "index": index,
                "reason": reason,
            },
        )

    def _log_event(self, event_type: str, payload: dict[str, Any]) -> None:
        event = {
            "event_time": datetime.now().isoformat(timespec="seconds"),
            "event_type": event_type,
            "payload": payload,
        }
        if self._pending is not None:
            self._pending.events.append(event)
            return
        events = self._read_yaml_list(self.log_file)
        events.append(event)
        self._write_yaml_files({self.log_file: events})

    @contextmanager
    def transaction(self) -> Iterator["YamlBookingStore"]:
        """Buffer every write until the outermost block exits cleanly."""
        if self._pending is not None:
            yield self
            return

        pending = _PendingWrites(
            resources=self._read_yaml_list(self.resources_file),
            reservations=self._read_yaml_list(self.reservations_file),
        )
        self._pending = pending
        try:
            yield self
        finally:
            self._pending = None
        self._flush(pending)

    def _flush(self, pending: _PendingWrites) -> None:
        targets: dict[Path, list[dict[str, Any]]] = {}
        if "resources" in pending.dirty:
            targets[self.resources_file] = pending.resources
        if "reservations" in pending.dirty:
            targets[self.reservations_file] = pending.reservations
        if targets:
            self._write_yaml_files(targets)

        # The data files are committed at this point; the audit trail follows them.
        if pending.events:
            try:
                self._write_yaml_files({self.log_file: self._read_yaml_list(self.log_file) + pending.events})
            except StoreError as error:
                logger.warning("Committed %d change(s) but could not append the event log: %s", len(pending.events), error)

    def close(self) -> None:
        # Files are opened per call; an open transaction is abandoned.
        self._pending = None

    def load_resources(self) -> list[Resource]:
        return self._load_rows(self.resources_file, Resource.from_dict)

    def load_reservations(self) -> list[Reservation]:
        return self._load_rows(self.reservations_file, Reservation.from_dict)

    def _load_rows(self, path: Path, parse: Callable[[dict[str, Any]], T]) -> list[T]:
        loaded: list[T] = []
        for index, row in enumerate(self._read_yaml_list(path)):
            try:
                loaded.append(parse(row))
            except (KeyError, TypeError, ValueError) as error:
                reason = str(error) if isinstance(error, ValidationError) else f"{type(error).__name__}: {error}"
                self._skip_row(path, index, reason)
        return loaded

    def save_resource(self, resource: Resource) -> None:
        with self.transaction():
            pending = self._pending
            _upsert(pending.resources, "resource_id", resource.resource_id, resource.to_dict())
            pending.dirty.add("resources")
            self._log_event("RESOURCE_SAVED", resource.to_dict())

    def delete_resource(self, resource_id: int) -> None:
        with self.transaction():
            pending = self._pending
            pending.resources[:] = _without(pending.resources, "resource_id", resource_id, "resource")
            pending.dirty.add("resources")
            self._log_event("RESOURCE_DELETED", {"resource_id": resource_id})

    def set_resource_status(self, resource_id: int, status: str) -> None:
        with self.transaction():
            pending = self._pending
            row = _find(pending.resources, "resource_id", resource_id, "resource")
            previous = row.get("status")
            row["status"] = status
            pending.dirty.add("resources")
            self._log_event(
                "RESOURCE_STATUS_CHANGED",
                {"resource_id": resource_id, "from": previous, "to": status},
            )

    def save_reservation(self, reservation: Reservation) -> None:
        with self.transaction():
            pending = self._pending
            _upsert(pending.reservations, "reservation_id", reservation.reservation_id, reservation.to_dict())
            pending.dirty.add("reservations")
            self._log_event("RESERVATION_SAVED", reservation.to_dict())

    def delete_reservation(self, reservation_id: int) -> None:
        with self.transaction():
            pending = self._pending
            pending.reservations[:] = _without(pending.reservations, "reservation_id", reservation_id, "reservation")
            pending.dirty.add("reservations")
            self._log_event("RESERVATION_DELETED", {"reservation_id": reservation_id})


def _matches(row: dict[str, Any], key: str, identifier: int) -> bool:
    return str(row.get(key)) == str(identifier)


def _find(rows: list[dict[str, Any]], key: str, identifier: int, kind: str) -> dict[str, Any]:
    for row in rows:
        if _matches(row, key, identifier):
            return row
    raise StoreError(f"{kind} {identifier} is not stored")


def _without(rows: list[dict[str, Any]], key: str, identifier: int, kind: str) -> list[dict[str, Any]]:
    remaining = [row for row in rows if not _matches(row, key, identifier)]
    if len(remaining) == len(rows):
        raise StoreError(f"{kind} {identifier} is not stored")
    return remaining


def _upsert(rows: list[dict[str, Any]], key: str, identifier: int, payload: dict[str, Any]) -> None:
    for index, row in enumerate(rows):
        if _matches(row, key, identifier):
            rows[index] = payload
            return
    rows.append(payload)
