from __future__ import annotations

import atexit
from dataclasses import replace
from datetime import datetime
import logging
from pathlib import Path
from typing import Any, Callable

from flask import Flask, jsonify, request

from .config import BookingConfig
from .errors import BookingError, ConflictError, DuplicateId, NotFound, StoreError, ValidationError
from .parsing import parse_date, parse_reservation_request, parse_time
from .records import STATUS_AVAILABLE, Reservation, Resource
from .service import BookingService
from .store import create_store

logger = logging.getLogger(__name__)


def create_app(
    data_dir: str | Path | None = None,
    now_provider: Callable[[], datetime] | None = None,
    service: BookingService | None = None,
) -> Flask:
    app = Flask(__name__)
    clock: Callable[[], datetime] = now_provider or datetime.now

    if service is None:
        config = BookingConfig.from_env()
        if data_dir is not None:
            config = replace(config, data_dir=Path(data_dir))
        store = create_store(config)
        atexit.register(store.close)
        service = BookingService(store, clock=clock)
        service.load()
    app.extensions["workstation_booking"] = service

    def _serialize_resource(resource: Resource) -> dict[str, Any]:
        return {**resource.to_dict(), "description": resource.describe()}

    def _serialize_reservation(reservation: Reservation) -> dict[str, Any]:
        return reservation.to_dict()

    @app.errorhandler(BookingError)
    def handle_booking_error(error: BookingError) -> Any:
        payload: dict[str, Any] = {"ok": False, "message": str(error)}
        if isinstance(error, ConflictError):
            payload["conflicting_id"] = error.conflicting_id
            return jsonify(payload), 409
        if isinstance(error, DuplicateId):
            return jsonify(payload), 409
        if isinstance(error, NotFound):
            return jsonify(payload), 404
        if isinstance(error, StoreError):
            logger.error("Store failure while serving %s %s: %s", request.method, request.path, error)
            return jsonify({"ok": False, "message": "Storage failure, the request was not applied."}), 503
        return jsonify(payload), 400

    @app.after_request
    def add_cors_headers(response: Any) -> Any:
        response.headers["Access-Control-Allow-Origin"] = "*"
        response.headers["Access-Control-Allow-Methods"] = "GET,POST,DELETE,OPTIONS"
        response.headers["Access-Control-Allow-Headers"] = "Content-Type"
        return response

    @app.get("/api/resources")
    def list_resources() -> Any:
        resources = service.list_resources(now=clock())
        return jsonify({"ok": True, "resources": [_serialize_resource(resource) for resource in resources]})

    @app.post("/api/resources")
    def register_resource() -> Any:
        payload = request.get_json(silent=True) or {}
        created = service.register_resource(
            resource_id=_require_int(payload, "resource_id"),
            name=_require_str(payload, "name"),
            rating=_require_int(payload, "rating") if payload.get("rating") is not None else None,
            status=_require_str(payload, "status") if payload.get("status") is not None else STATUS_AVAILABLE,
        )
        return jsonify({"ok": True, "resource": _serialize_resource(created)}), 201

    @app.post("/api/resources/<int:resource_id>/status")
    def set_resource_status(resource_id: int) -> Any:
        payload = request.get_json(silent=True) or {}
        status = _require_str(payload, "status").strip().lower()
        updated = service.set_resource_status(resource_id, status, now=clock())
        return jsonify({"ok": True, "resource": _serialize_resource(updated)})

    @app.delete("/api/resources/<int:resource_id>")
    def deregister_resource(resource_id: int) -> Any:
        removed, cascaded = service.deregister_resource(resource_id)
        return jsonify(
            {
                "ok": True,
                "resource": _serialize_resource(removed),
                "removed_reservation_ids": [reservation.reservation_id for reservation in cascaded],
            }
        )

    @app.get("/api/reservations")
    def list_reservations() -> Any:
        resource_id = request.args.get("resource_id", type=int)
        reservations = service.list_reservations(now=clock(), resource_id=resource_id)
        return jsonify({"ok": True, "reservations": [_serialize_reservation(row) for row in reservations]})

    @app.post("/api/reservations")
    def add_reservation() -> Any:
        payload = request.get_json(silent=True) or {}
        created = service.add_reservation(
            reservation_id=_require_int(payload, "reservation_id"),
            resource_id=_require_int(payload, "resource_id"),
            client_name=_require_str(payload, "client_name"),
            date=parse_date(_require_str(payload, "date")),
            start=parse_time(_require_str(payload, "start")),
            end=parse_time(_require_str(payload, "end")),
            now=clock(),
        )
        return jsonify({"ok": True, "reservation": _serialize_reservation(created)}), 201

    @app.post("/api/reservations/text")
    def add_reservation_from_text() -> Any:
        payload = request.get_json(silent=True) or {}
        text = _require_str(payload, "text").strip()
        if not text:
            raise ValidationError("text is required.")

        parsed = parse_reservation_request(text)
        created = service.add_reservation(
            reservation_id=_require_int(payload, "reservation_id"),
            resource_id=parsed.resource_id,
            client_name=_require_str(payload, "client_name"),
            date=parsed.date,
            start=parsed.start,
            end=parsed.end,
            now=clock(),
        )
        return jsonify({"ok": True, "reservation": _serialize_reservation(created)}), 201

    @app.post("/api/reservations/<int:reservation_id>/update")
    def update_reservation(reservation_id: int) -> Any:
        payload = request.get_json(silent=True) or {}
        updated = service.update_reservation(
            reservation_id,
            resource_id=_require_int(payload, "resource_id") if "resource_id" in payload else None,
            client_name=_require_str(payload, "client_name") if "client_name" in payload else None,
            date=parse_date(_require_str(payload, "date")) if "date" in payload else None,
            start=parse_time(_require_str(payload, "start")) if "start" in payload else None,
            end=parse_time(_require_str(payload, "end")) if "end" in payload else None,
            now=clock(),
        )
        return jsonify({"ok": True, "reservation": _serialize_reservation(updated)})

    @app.delete("/api/reservations/<int:reservation_id>")
    def delete_reservation(reservation_id: int) -> Any:
        deleted = service.remove_reservation(reservation_id, now=clock())
        return jsonify({"ok": True, "reservation": _serialize_reservation(deleted)})

    @app.post("/api/sweep")
    def run_sweep() -> Any:
        report = service.sweep(now=clock())
        return jsonify({"ok": True, **report.to_dict()})

    return app


def _require_int(payload: dict[str, Any], key: str) -> int:
    value = payload.get(key)
    if isinstance(value, bool):
        raise ValidationError(f"{key} must be an integer.")
    try:
        return int(value)
    except (TypeError, ValueError) as error:
        raise ValidationError(f"{key} must be an integer.") from error



def _require_str(payload: dict[str, Any], key: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str):
        raise ValidationError(f"{key} must be a string.")
    return value

if __name__ == "__main__":
    logging.basicConfig(level=BookingConfig.from_env().log_level)
    app = create_app()
    app.run(host="127.0.0.1", port=5000, debug=False)
