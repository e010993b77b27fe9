from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Mapping, Sequence

from backend.app.services.adjustments import AdjustmentStore
from backend.app.services.intervals import (
    Interval,
    day_key,
    effective_interval,
    format_minutes,
    overlaps,
    previous_day,
    reservation_range_on,
    spillover_window,
)
from backend.app.services.models import Adjustment, Reservation, Table
from backend.app.services.tables import TableResolver


class ConflictKind(str, Enum):
    REGULAR = "regular"
    EVENT = "event"
    SPILLOVER = "spillover"


@dataclass(frozen=True)
class ConflictInfo:
    table: Table
    reservation_id: str
    guest_name: str
    kind: ConflictKind
    window: Interval
    date: str

    @property
    def table_label(self) -> str:
        return self.table.label

    @property
    def time_range(self) -> str:
        return f"{format_minutes(self.window.start)}-{format_minutes(self.window.end)}"

    @property
    def message(self) -> str:
        qualifier = {
            ConflictKind.REGULAR: "",
            ConflictKind.EVENT: " (event reservation)",
            ConflictKind.SPILLOVER: " (spillover reservation)",
        }[self.kind]
        return (
            f"Table {self.table_label} is occupied{qualifier} from "
            f"{format_minutes(self.window.start)} to {format_minutes(self.window.end)} - {self.guest_name}"
        )


@dataclass(frozen=True)
class Occupant:
    reservation: Reservation
    window: Interval
    kind: ConflictKind


class ConflictDetector:
    """Read-only double-booking scan over a loaded reservation snapshot.

    ``reservations`` holds regular and event reservations of the day being
    checked and of the day before (for spillover).
    """

    def __init__(self, reservations: Iterable[Reservation], resolver: TableResolver) -> None:
        self.reservations = list(reservations)
        self.resolver = resolver

    def uses_table(self, reservation: Reservation, table: Table) -> bool:
        for ref in reservation.table_ids:
            resolved = self.resolver.resolve(ref, table.zone_id, reservation.zone_id)
            if resolved is not None and resolved.id == table.id:
                return True
        return False

    def occupants(
        self,
        table: Table,
        date: str,
        adjustments: Mapping[str, Adjustment],
        previous_adjustments: Mapping[str, Adjustment],
        exclude_reservation_id: str | None = None,
    ) -> list[Occupant]:
        """Everything holding ``table`` on ``date``: spillovers first, then regular, then event."""
        prev_key = previous_day(date)
        spill: list[Occupant] = []
        regular: list[Occupant] = []
        event: list[Occupant] = []
        for reservation in self.reservations:
            if reservation.id == exclude_reservation_id or not reservation.is_active:
                continue
            if prev_key is not None and reservation.date == prev_key:
                window = spillover_window(effective_interval(reservation, previous_adjustments.get(reservation.id)))
                if window is not None and self.uses_table(reservation, table):
                    spill.append(Occupant(reservation, window, ConflictKind.SPILLOVER))
            elif reservation.date == date:
                if not self.uses_table(reservation, table):
                    continue
                window = effective_interval(reservation, adjustments.get(reservation.id))
                if reservation.is_event:
                    event.append(Occupant(reservation, window, ConflictKind.EVENT))
                else:
                    regular.append(Occupant(reservation, window, ConflictKind.REGULAR))
        return spill + regular + event

    def find_conflicts(
        self,
        candidate: Interval,
        table_refs: Sequence[object],
        date: str,
        *,
        zone_id: str | None = None,
        adjustments: Mapping[str, Adjustment] | None = None,
        previous_adjustments: Mapping[str, Adjustment] | None = None,
        exclude_reservation_id: str | None = None,
        original: Reservation | None = None,
        original_adjustment: Adjustment | None = None,
    ) -> ConflictInfo | None:
        """First conflict on the first conflicting table, in assignment order.

        ``original`` is the stored version of a reservation being edited. A
        table/occupant pair it already overlapped before the edit is tolerated.
        """
        key = day_key(date)
        adjustments = adjustments or {}
        previous_adjustments = previous_adjustments or {}
        if original is not None and exclude_reservation_id is None:
            exclude_reservation_id = original.id

        original_window, original_tables = self._stored_state(
            original, original_adjustment, key, adjustments, previous_adjustments
        )

        checked: set[str] = set()
        for ref in table_refs:
            table = self.resolver.resolve_for_candidate(ref, zone_id)
            if table is None or table.id in checked:
                continue
            checked.add(table.id)
            for occupant in self.occupants(table, key, adjustments, previous_adjustments, exclude_reservation_id):
                if not overlaps(candidate, occupant.window):
                    continue
                if (
                    original_window is not None
                    and table.id in original_tables
                    and overlaps(original_window, occupant.window)
                ):
                    continue
                return ConflictInfo(
                    table=table,
                    reservation_id=occupant.reservation.id,
                    guest_name=occupant.reservation.guest_name,
                    kind=occupant.kind,
                    window=occupant.window,
                    date=key,
                )
        return None

    def _stored_state(
        self,
        original: Reservation | None,
        original_adjustment: Adjustment | None,
        date: str,
        adjustments: Mapping[str, Adjustment],
        previous_adjustments: Mapping[str, Adjustment],
    ) -> tuple[Interval | None, set[str]]:
        if original is None:
            return None, set()
        if original_adjustment is None:
            if original.date == date:
                original_adjustment = adjustments.get(original.id)
            elif original.date == previous_day(date):
                original_adjustment = previous_adjustments.get(original.id)
        window = reservation_range_on(original, date, original_adjustment)
        tables: set[str] = set()
        for ref in original.table_ids:
            table = self.resolver.resolve_for_candidate(ref, original.zone_id)
            if table is not None:
                tables.add(table.id)
        return window, tables


async def check_conflicts(
    detector: ConflictDetector,
    store: AdjustmentStore,
    candidate: Interval,
    table_refs: Sequence[object],
    date: str,
    **options,
) -> ConflictInfo | None:
    """Load both days' adjustments from ``store`` and run the detector."""
    key = day_key(date)
    adjustments = await store.get_adjustments_for_date(key)
    prev_key = previous_day(key)
    previous = await store.get_adjustments_for_date(prev_key) if prev_key else {}
    return detector.find_conflicts(
        candidate,
        table_refs,
        key,
        adjustments=adjustments,
        previous_adjustments=previous,
        **options,
    )
