from __future__ import annotations

from typing import Iterable, Protocol

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.services.intervals import day_key, previous_day
from backend.app.services.models import Reservation, ReservationKind, Table, Zone
from backend.app.services.tables import FloorPlan


class ReservationSource(Protocol):
    async def reservations_around(self, date: str) -> list[Reservation]: ...

    async def reservation(self, reservation_id: str, date: str) -> Reservation | None: ...

    async def floor_plan(self) -> FloorPlan: ...


def _around(date: str) -> tuple[str, str | None]:
    key = day_key(date)
    return key, previous_day(key)


class SqlReservationSource:
    """Reads reservations (regular and event) and the floor plan with plain SQL."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def reservations_around(self, date: str) -> list[Reservation]:
        """Reservations of ``date`` and of the day before, for spillover."""
        key, prev_key = _around(date)
        params = {"date": key, "prev_date": prev_key or key}

        regular = await self.session.execute(
            text(
                """
                SELECT r.id, r.date, r.time, r.guest_name, r.guest_count,
                       r.status, r.table_ids, r.zone_id, r.cleared
                FROM reservation r
                WHERE r.date IN (:date, :prev_date)
                """
            ),
            params,
        )
        events = await self.session.execute(
            text(
                """
                SELECT e.id, e.date, e.time, e.guest_name, e.guest_count,
                       e.status, e.table_ids, e.zone_id, e.cleared
                FROM event_reservation e
                WHERE e.date IN (:date, :prev_date)
                """
            ),
            params,
        )

        out = [Reservation.model_validate(dict(row)) for row in regular.mappings()]
        out.extend(
            Reservation.model_validate({**dict(row), "kind": ReservationKind.EVENT})
            for row in events.mappings()
        )
        return out

    async def reservation(self, reservation_id: str, date: str) -> Reservation | None:
        for reservation in await self.reservations_around(date):
            if reservation.id == str(reservation_id) and reservation.date == day_key(date):
                return reservation
        return None

    async def floor_plan(self) -> FloorPlan:
        zones = await self.session.execute(text("SELECT id, name FROM zone ORDER BY id"))
        result = await self.session.execute(
            text(
                """
                SELECT t.id, t.number, t.name, t.zone_id
                FROM dining_table t
                JOIN zone z ON z.id = t.zone_id
                ORDER BY z.id, t.number NULLS LAST, t.id
                """
            )
        )
        return FloorPlan.from_tables(
            (Table.model_validate(dict(row)) for row in result.mappings()),
            [Zone.model_validate(dict(row)) for row in zones.mappings()],
        )


class InMemoryReservationSource:
    def __init__(
        self,
        reservations: Iterable[Reservation] = (),
        tables: Iterable[Table] = (),
        zones: Iterable[Zone] = (),
    ) -> None:
        self.reservations = list(reservations)
        self.tables = list(tables)
        self.zones = list(zones)

    async def reservations_around(self, date: str) -> list[Reservation]:
        key, prev_key = _around(date)
        return [r for r in self.reservations if r.date in (key, prev_key)]

    async def reservation(self, reservation_id: str, date: str) -> Reservation | None:
        key = day_key(date)
        for reservation in self.reservations:
            if reservation.id == str(reservation_id) and reservation.date == key:
                return reservation
        return None

    async def floor_plan(self) -> FloorPlan:
        return FloorPlan.from_tables(self.tables, self.zones)
