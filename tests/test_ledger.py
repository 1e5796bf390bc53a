import tempfile
import unittest
from datetime import datetime
from pathlib import Path

from workstation_booking import (
    STATUS_AVAILABLE,
    STATUS_BOOKED,
    STATUS_MAINTENANCE,
    ConflictError,
    DuplicateId,
    NotFound,
    Reservation,
    ReservationLedger,
    Resource,
    ResourceRegistry,
    TimeOfDay,
    ValidationError,
    YamlBookingStore,
    overlaps,
)

NOW = datetime(2025, 6, 1, 8, 0)


def _reservation(reservation_id: int, start: tuple[int, int], end: tuple[int, int], **overrides) -> Reservation:
    fields = {
        "reservation_id": reservation_id,
        "resource_id": 1,
        "client_name": "Ivan",
        "date": "10-06-2025",
        "start": TimeOfDay(*start),
        "end": TimeOfDay(*end),
    }
    fields.update(overrides)
    return Reservation(**fields)


class LedgerTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self._temp_dir.cleanup)
        self.store = YamlBookingStore(Path(self._temp_dir.name) / "data")
        self.registry = ResourceRegistry(self.store)
        self.ledger = ReservationLedger(self.registry)
        self.registry.register(Resource(1, "Desk A"))
        self.registry.register(Resource(2, "Desk B"))


class TestLedgerAdd(LedgerTestCase):
    def test_overlapping_reservation_reports_conflicting_id(self) -> None:
        self.ledger.add(_reservation(100, (9, 0), (10, 0)), now=NOW)

        with self.assertRaises(ConflictError) as context:
            self.ledger.add(_reservation(101, (9, 30), (10, 30)), now=NOW)

        self.assertEqual(context.exception.conflicting_id, 100)
        self.assertNotIn(101, self.ledger)

    def test_back_to_back_reservation_is_accepted(self) -> None:
        self.ledger.add(_reservation(100, (9, 0), (10, 0)), now=NOW)
        created = self.ledger.add(_reservation(102, (10, 0), (11, 0)), now=NOW)

        self.assertEqual(created.reservation_id, 102)
        self.assertEqual(len(self.ledger), 2)

    def test_same_interval_on_other_day_or_resource_is_accepted(self) -> None:
        self.ledger.add(_reservation(100, (9, 0), (10, 0)), now=NOW)
        self.ledger.add(_reservation(101, (9, 0), (10, 0), date="11-06-2025"), now=NOW)
        self.ledger.add(_reservation(102, (9, 0), (10, 0), resource_id=2), now=NOW)

        self.assertEqual(len(self.ledger), 3)

    def test_add_marks_resource_booked_and_persists(self) -> None:
        self.ledger.add(_reservation(100, (9, 0), (10, 0)), now=NOW)

        self.assertEqual(self.registry.require(1).status, STATUS_BOOKED)
        self.assertEqual([row.reservation_id for row in self.store.load_reservations()], [100])
        stored = {resource.resource_id: resource.status for resource in self.store.load_resources()}
        self.assertEqual(stored[1], STATUS_BOOKED)

    def test_add_rejects_unknown_resource(self) -> None:
        with self.assertRaises(NotFound):
            self.ledger.add(_reservation(100, (9, 0), (10, 0), resource_id=99), now=NOW)

    def test_add_rejects_duplicate_id(self) -> None:
        self.ledger.add(_reservation(100, (9, 0), (10, 0)), now=NOW)
        with self.assertRaises(DuplicateId):
            self.ledger.add(_reservation(100, (12, 0), (13, 0)), now=NOW)

    def test_add_rejects_empty_client_name(self) -> None:
        with self.assertRaises(ValidationError):
            self.ledger.add(_reservation(100, (9, 0), (10, 0), client_name="   "), now=NOW)

    def test_add_rejects_malformed_date(self) -> None:
        with self.assertRaises(ValidationError):
            self.ledger.add(_reservation(100, (9, 0), (10, 0), date="2025-06-10"), now=NOW)

    def test_add_rejects_reservation_that_already_ended(self) -> None:
        with self.assertRaises(ValidationError):
            self.ledger.add(_reservation(100, (9, 0), (10, 0)), now=datetime(2025, 6, 10, 10, 1))

        self.assertEqual(len(self.ledger), 0)
        self.assertEqual(self.registry.require(1).status, STATUS_AVAILABLE)

    def test_add_accepts_reservation_in_progress(self) -> None:
        created = self.ledger.add(_reservation(100, (9, 0), (10, 0)), now=datetime(2025, 6, 10, 9, 30))
        self.assertEqual(created.reservation_id, 100)

    def test_zero_length_interval_is_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            _reservation(100, (9, 0), (9, 0))

    def test_add_keeps_maintenance_status(self) -> None:
        self.registry.set_status(1, STATUS_MAINTENANCE)
        self.ledger.add(_reservation(100, (9, 0), (10, 0)), now=NOW)

        self.assertEqual(self.registry.require(1).status, STATUS_MAINTENANCE)


class TestLedgerRemove(LedgerTestCase):
    def test_add_then_remove_restores_previous_state(self) -> None:
        self.ledger.add(_reservation(100, (9, 0), (10, 0)), now=NOW)
        before_ids = [row.reservation_id for row in self.ledger]
        before_status = self.registry.require(1).status

        self.ledger.add(_reservation(101, (11, 0), (12, 0)), now=NOW)
        self.ledger.remove(101, now=NOW)

        self.assertEqual([row.reservation_id for row in self.ledger], before_ids)
        self.assertEqual(self.registry.require(1).status, before_status)

    def test_removing_last_reservation_makes_resource_available(self) -> None:
        self.ledger.add(_reservation(100, (9, 0), (10, 0)), now=NOW)
        removed = self.ledger.remove(100, now=NOW)

        self.assertEqual(removed.reservation_id, 100)
        self.assertEqual(self.registry.require(1).status, STATUS_AVAILABLE)
        self.assertEqual(self.store.load_reservations(), [])

    def test_remove_ignores_already_ended_reservations_when_recomputing(self) -> None:
        self.ledger.add(_reservation(100, (9, 0), (10, 0)), now=NOW)
        self.ledger.add(_reservation(101, (9, 0), (10, 0), date="20-06-2025"), now=NOW)

        self.ledger.remove(101, now=datetime(2025, 6, 15, 8, 0))

        self.assertEqual(self.registry.require(1).status, STATUS_AVAILABLE)

    def test_remove_unknown_raises_not_found(self) -> None:
        with self.assertRaises(NotFound):
            self.ledger.remove(404, now=NOW)


class TestLedgerCascade(LedgerTestCase):
    def test_deregistering_resource_drops_its_reservations(self) -> None:
        self.ledger.add(_reservation(100, (9, 0), (10, 0)), now=NOW)
        self.ledger.add(_reservation(200, (9, 0), (10, 0), resource_id=2), now=NOW)

        removed, cascaded = self.registry.deregister(1)

        self.assertEqual(removed.resource_id, 1)
        self.assertEqual([row.reservation_id for row in cascaded], [100])
        self.assertEqual([row.reservation_id for row in self.ledger], [200])
        self.assertEqual([row.reservation_id for row in self.store.load_reservations()], [200])
        with self.assertRaises(NotFound):
            self.ledger.remove(100, now=NOW)


class TestLedgerUpdate(LedgerTestCase):
    def test_update_with_inverted_interval_leaves_reservation_unchanged(self) -> None:
        original = self.ledger.add(_reservation(100, (9, 0), (10, 0)), now=NOW)

        with self.assertRaises(ValidationError):
            self.ledger.update(100, end=TimeOfDay(8, 30), now=NOW)

        self.assertEqual(self.ledger.get(100), original)
        self.assertEqual(self.store.load_reservations(), [original])

    def test_update_may_overlap_its_own_previous_interval(self) -> None:
        self.ledger.add(_reservation(100, (9, 0), (10, 0)), now=NOW)
        updated = self.ledger.update(100, start=TimeOfDay(9, 30), end=TimeOfDay(10, 30), now=NOW)

        self.assertEqual(updated.start, TimeOfDay(9, 30))
        self.assertEqual(self.store.load_reservations(), [updated])

    def test_update_conflict_leaves_reservation_unchanged(self) -> None:
        self.ledger.add(_reservation(100, (9, 0), (10, 0)), now=NOW)
        original = self.ledger.add(_reservation(101, (10, 0), (11, 0)), now=NOW)

        with self.assertRaises(ConflictError) as context:
            self.ledger.update(101, start=TimeOfDay(9, 45), now=NOW)

        self.assertEqual(context.exception.conflicting_id, 100)
        self.assertEqual(self.ledger.get(101), original)

    def test_moving_to_another_resource_recomputes_both(self) -> None:
        self.ledger.add(_reservation(100, (9, 0), (10, 0)), now=NOW)
        self.ledger.update(100, resource_id=2, now=NOW)

        self.assertEqual(self.registry.require(1).status, STATUS_AVAILABLE)
        self.assertEqual(self.registry.require(2).status, STATUS_BOOKED)

    def test_update_checks_conflicts_on_the_new_resource(self) -> None:
        self.ledger.add(_reservation(100, (9, 0), (10, 0)), now=NOW)
        self.ledger.add(_reservation(200, (9, 30), (10, 30), resource_id=2), now=NOW)

        with self.assertRaises(ConflictError) as context:
            self.ledger.update(100, resource_id=2, now=NOW)

        self.assertEqual(context.exception.conflicting_id, 200)
        self.assertEqual(self.ledger.require(100).resource_id, 1)

    def test_update_unknown_raises_not_found(self) -> None:
        with self.assertRaises(NotFound):
            self.ledger.update(404, client_name="Olga", now=NOW)


class TestLedgerInvariant(LedgerTestCase):
    def test_no_overlaps_after_mixed_operations(self) -> None:
        attempts = [
            (100, (9, 0), (10, 0)),
            (101, (9, 30), (10, 30)),
            (102, (10, 0), (11, 0)),
            (103, (8, 0), (9, 1)),
            (104, (11, 0), (12, 0)),
            (105, (10, 59), (11, 30)),
        ]
        for reservation_id, start, end in attempts:
            try:
                self.ledger.add(_reservation(reservation_id, start, end), now=NOW)
            except ConflictError:
                pass
        self.ledger.remove(102, now=NOW)
        try:
            self.ledger.update(104, start=TimeOfDay(9, 45), now=NOW)
        except ConflictError:
            pass

        rows = list(self.ledger)
        for index, first in enumerate(rows):
            for second in rows[index + 1 :]:
                if first.resource_id == second.resource_id and first.date == second.date:
                    self.assertFalse(overlaps(first.start, first.end, second.start, second.end))


if __name__ == "__main__":
    unittest.main()
