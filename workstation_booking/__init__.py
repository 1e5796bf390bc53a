from .errors import BookingError, ConflictError, DuplicateId, NotFound, StoreError, ValidationError
from .interval import DATE_FORMAT, TimeOfDay, is_before, overlaps, parse_date, to_instant
from .records import (
	RESOURCE_STATUSES,
	STATUS_AVAILABLE,
	STATUS_BOOKED,
	STATUS_MAINTENANCE,
	Reservation,
	Resource,
)
from .config import BookingConfig
from .yaml_store import YamlBookingStore
from .sqlite_store import SqliteBookingStore
from .store import BookingStore, create_store, mirrored, open_store
from .registry import ResourceRegistry
from .ledger import ReservationLedger
from .sweeper import SweepReport, sweep
from .service import BookingService, open_service
from .parsing import ParsedReservationRequest, parse_reservation_request, parse_time

__all__ = [
	"BookingError",
	"ConflictError",
	"DuplicateId",
	"NotFound",
	"StoreError",
	"ValidationError",
	"DATE_FORMAT",
	"TimeOfDay",
	"is_before",
	"overlaps",
	"parse_date",
	"to_instant",
	"RESOURCE_STATUSES",
	"STATUS_AVAILABLE",
	"STATUS_BOOKED",
	"STATUS_MAINTENANCE",
	"Reservation",
	"Resource",
	"BookingConfig",
	"YamlBookingStore",
	"SqliteBookingStore",
	"BookingStore",
	"create_store",
	"mirrored",
	"open_store",
	"ResourceRegistry",
	"ReservationLedger",
	"SweepReport",
	"sweep",
	"BookingService",
	"open_service",
	"ParsedReservationRequest",
	"parse_reservation_request",
	"parse_time",
]
