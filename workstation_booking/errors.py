from __future__ import annotations


class BookingError(Exception):
    pass


class ValidationError(BookingError, ValueError):
    pass


class DuplicateId(BookingError, ValueError):
    def __init__(self, kind: str, identifier: int) -> None:
        super().__init__(f"{kind} id {identifier} already exists.")
        self.kind = kind
        self.identifier = identifier


class ConflictError(BookingError, ValueError):
    def __init__(self, conflicting_id: int) -> None:
        super().__init__(f"Reservation overlaps with existing reservation {conflicting_id}.")
        self.conflicting_id = conflicting_id


class NotFound(BookingError, LookupError):
    def __init__(self, kind: str, identifier: int) -> None:
        super().__init__(f"{kind} {identifier} not found.")
        self.kind = kind
        self.identifier = identifier


class StoreError(BookingError, RuntimeError):
    pass
