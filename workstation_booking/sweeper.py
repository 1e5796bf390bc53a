from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
import logging

from .ledger import ReservationLedger
from .store import mirrored

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SweepReport:
    expired_ids: tuple[int, ...] = ()
    status_changes: dict[int, str] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.expired_ids or self.status_changes)

    def to_dict(self) -> dict[str, object]:
        return {
            "expired_ids": list(self.expired_ids),
            "status_changes": {str(key): value for key, value in self.status_changes.items()},
        }


def sweep(ledger: ReservationLedger, now: datetime | None = None, full: bool = False) -> SweepReport:
    """Retire reservations that ended before ``now`` and refresh resource status.

    Only resources that lost a reservation are recomputed unless ``full`` is
    set, in which case every registered resource is. Reservations whose end
    cannot be determined are left alone.
    """
    effective_now = now or datetime.now()
    registry = ledger.registry

    expired = []
    for reservation in ledger:
        end_instant = reservation.end_instant
        if end_instant is not None and end_instant < effective_now:
            expired.append(reservation)

    touched: list[int] = []
    for reservation in expired:
        if reservation.resource_id not in touched:
            touched.append(reservation.resource_id)
    if full:
        touched.extend(resource.resource_id for resource in registry if resource.resource_id not in touched)

    if not expired and not touched:
        return SweepReport()

    status_changes: dict[int, str] = {}
    with mirrored(ledger.store, ledger, registry):
        ledger.discard(expired)
        for resource_id in touched:
            before = registry.get(resource_id)
            if before is None:
                continue
            after = ledger.refresh_status(resource_id, effective_now)
            if after.status != before.status:
                status_changes[resource_id] = after.status

    report = SweepReport(
        expired_ids=tuple(reservation.reservation_id for reservation in expired),
        status_changes=status_changes,
    )
    if report:
        logger.info(
            "Sweep at %s expired %d reservation(s), %d status change(s)",
            effective_now.isoformat(timespec="minutes"),
            len(report.expired_ids),
            len(report.status_changes),
        )
    return report
