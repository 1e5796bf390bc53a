import tempfile
import unittest
from datetime import datetime
from pathlib import Path

from workstation_booking import BookingService, StoreError, YamlBookingStore
from workstation_booking.web_app import create_app

NOW = datetime(2025, 6, 1, 8, 0)


class _BrokenStatusStore(YamlBookingStore):
    def set_resource_status(self, resource_id, status):
        raise StoreError("disk unavailable")


class TestWebApp(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self._temp_dir.cleanup)
        self.data_dir = Path(self._temp_dir.name) / "data"
        self.now = NOW
        self.service = BookingService(YamlBookingStore(self.data_dir), clock=lambda: self.now)
        self.service.load()
        self.client = create_app(now_provider=lambda: self.now, service=self.service).test_client()

        for resource_id, name in ((1, "Desk A"), (2, "Desk B")):
            response = self.client.post("/api/resources", json={"resource_id": resource_id, "name": name})
            self.assertEqual(response.status_code, 201)

    def _book(self, reservation_id: int, start: str, end: str, resource_id: int = 1):
        return self.client.post(
            "/api/reservations",
            json={
                "reservation_id": reservation_id,
                "resource_id": resource_id,
                "client_name": "Ivan",
                "date": "10-06-2025",
                "start": start,
                "end": end,
            },
        )

    def test_reservation_lifecycle(self) -> None:
        created = self._book(100, "09:00", "10:00")
        self.assertEqual(created.status_code, 201)
        self.assertEqual(created.get_json()["reservation"]["start"], "09:00")

        resources = self.client.get("/api/resources").get_json()["resources"]
        self.assertEqual(resources[0]["status"], "booked")
        self.assertIn("Workstation [ID: 1", resources[0]["description"])

        updated = self.client.post("/api/reservations/100/update", json={"end": "10:30"})
        self.assertEqual(updated.status_code, 200)
        self.assertEqual(updated.get_json()["reservation"]["end"], "10:30")

        deleted = self.client.delete("/api/reservations/100")
        self.assertEqual(deleted.status_code, 200)
        self.assertEqual(self.client.get("/api/reservations").get_json()["reservations"], [])

    def test_overlap_returns_conflict_with_id(self) -> None:
        self._book(100, "09:00", "10:00")

        response = self._book(101, "09:30", "10:30")

        self.assertEqual(response.status_code, 409)
        payload = response.get_json()
        self.assertFalse(payload["ok"])
        self.assertEqual(payload["conflicting_id"], 100)

    def test_duplicate_resource_returns_conflict(self) -> None:
        response = self.client.post("/api/resources", json={"resource_id": 1, "name": "Again"})
        self.assertEqual(response.status_code, 409)

    def test_validation_and_not_found_errors(self) -> None:
        self.assertEqual(self._book(100, "10:00", "09:00").status_code, 400)
        self.assertEqual(self._book(100, "9am", "10:00").status_code, 400)
        self.assertEqual(self._book(100, "09:00", "10:00", resource_id=9).status_code, 404)
        self.assertEqual(self.client.delete("/api/reservations/404").status_code, 404)
        missing_id = self.client.post("/api/resources", json={"resource_id": "x", "name": "Desk"})
        self.assertEqual(missing_id.status_code, 400)

    def test_non_string_fields_are_rejected(self) -> None:
        self._book(100, "09:00", "10:00")

        update = self.client.post("/api/reservations/100/update", json={"client_name": None})
        self.assertEqual(update.status_code, 400)
        self.assertEqual(self.service.get_reservation(100).client_name, "Ivan")

        create = self.client.post(
            "/api/reservations",
            json={
                "reservation_id": 101,
                "resource_id": 1,
                "client_name": None,
                "date": "10-06-2025",
                "start": "11:00",
                "end": "12:00",
            },
        )
        self.assertEqual(create.status_code, 400)
        self.assertNotIn(101, self.service.ledger)

        register = self.client.post("/api/resources", json={"resource_id": 3, "name": 42})
        self.assertEqual(register.status_code, 400)

    def test_text_reservation(self) -> None:
        response = self.client.post(
            "/api/reservations/text",
            json={"reservation_id": 7, "client_name": "Olga", "text": "desk 2 10-06-2025 14:00~15:00"},
        )

        self.assertEqual(response.status_code, 201)
        reservation = response.get_json()["reservation"]
        self.assertEqual(reservation["resource_id"], 2)
        self.assertEqual(reservation["date"], "10-06-2025")

    def test_deregister_cascades(self) -> None:
        self._book(100, "09:00", "10:00")
        self._book(102, "10:00", "11:00")

        response = self.client.delete("/api/resources/1")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(sorted(response.get_json()["removed_reservation_ids"]), [100, 102])
        self.assertEqual(self.client.get("/api/reservations").get_json()["reservations"], [])

    def test_status_route_enforces_derived_state(self) -> None:
        self.assertEqual(self.client.post("/api/resources/1/status", json={"status": "booked"}).status_code, 400)

        response = self.client.post("/api/resources/1/status", json={"status": "maintenance"})
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.get_json()["resource"]["status"], "maintenance")

    def test_sweep_route_reports_expired(self) -> None:
        self._book(100, "09:00", "10:00")
        self.now = datetime(2025, 6, 10, 10, 1)

        payload = self.client.post("/api/sweep").get_json()

        self.assertEqual(payload["expired_ids"], [100])
        self.assertEqual(payload["status_changes"], {"1": "available"})

    def test_store_failure_returns_503_and_keeps_state(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            store = _BrokenStatusStore(Path(temp_dir) / "data")
            service = BookingService(store, clock=lambda: NOW)
            service.load()
            service.register_resource(1, "Desk A")
            client = create_app(now_provider=lambda: NOW, service=service).test_client()

            response = client.post(
                "/api/reservations",
                json={
                    "reservation_id": 100,
                    "resource_id": 1,
                    "client_name": "Ivan",
                    "date": "10-06-2025",
                    "start": "09:00",
                    "end": "10:00",
                },
            )

            self.assertEqual(response.status_code, 503)
            self.assertEqual(len(service.ledger), 0)
            self.assertEqual(store.load_reservations(), [])


if __name__ == "__main__":
    unittest.main()
