"""Mapping loosely-typed table references onto concrete tables of a zone.

Reservations store table references as whatever the UI had at hand: a table
id, a display number, sometimes a name. Table ids are regenerated when a
saved layout snapshot is reloaded, so a strict id lookup would drop valid
assignments; the resolver walks a fixed list of strategies instead.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable, Mapping, Sequence, Union

from backend.app.services.models import Table, Zone

_NUMERIC = re.compile(r"^\d+$")


@dataclass(frozen=True)
class ById:
    value: str


@dataclass(frozen=True)
class ByNumber:
    value: int
    raw: str


@dataclass(frozen=True)
class ByName:
    value: str


TableRef = Union[ById, ByNumber, ByName]


def parse_table_ref(raw: object) -> TableRef:
    """Tag a raw reference. Digits-only strings are numbers; the rest are ids."""
    if isinstance(raw, (ById, ByNumber, ByName)):
        return raw
    if isinstance(raw, int) and not isinstance(raw, bool):
        return ByNumber(raw, str(raw))
    text = str(raw).strip()
    if _NUMERIC.match(text):
        return ByNumber(int(text), text)
    return ById(text)


def ref_text(ref: TableRef) -> str:
    if isinstance(ref, ByNumber):
        return ref.raw
    return ref.value


class FloorPlan:
    """Read-only per-zone table lists, merged across saved layout snapshots."""

    def __init__(
        self,
        zone_tables: Mapping[str, Iterable[Table]] | None = None,
        zones: Iterable[Zone] = (),
    ) -> None:
        self._tables: dict[str, list[Table]] = {}
        self.zones: dict[str, Zone] = {z.id: z for z in zones}
        for zone_id, tables in (zone_tables or {}).items():
            self.add_tables(str(zone_id), tables)

    @classmethod
    def from_tables(cls, tables: Iterable[Table], zones: Iterable[Zone] = ()) -> "FloorPlan":
        plan = cls(zones=zones)
        for table in tables:
            plan.add_tables(table.zone_id, [table])
        return plan

    def add_tables(self, zone_id: str, tables: Iterable[Table]) -> None:
        bucket = self._tables.setdefault(zone_id, [])
        seen = {t.id for t in bucket}
        for table in tables:
            if table.id in seen:
                continue
            bucket.append(table)
            seen.add(table.id)

    def zone_ids(self) -> list[str]:
        return list(dict.fromkeys([*self.zones, *self._tables]))

    def zone(self, zone_id: str) -> Zone | None:
        if zone_id in self.zones:
            return self.zones[zone_id]
        if zone_id in self._tables:
            return Zone(id=zone_id)
        return None

    def tables_in(self, zone_id: str | None) -> list[Table]:
        if zone_id is None:
            return []
        return list(self._tables.get(str(zone_id), []))

    def all_tables(self) -> list[Table]:
        return [t for tables in self._tables.values() for t in tables]

    def sorted_tables(self, zone_id: str) -> list[Table]:
        return sorted(self.tables_in(zone_id), key=lambda t: (t.number if t.number is not None else 0, t.id))

    def resolve_anywhere(self, raw_ref: object) -> Table | None:
        """Locate a table in any zone by id, then by display number."""
        text = ref_text(parse_table_ref(raw_ref))
        tables = self.all_tables()
        for table in tables:
            if table.id == text:
                return table
        for table in tables:
            if table.number is not None and str(table.number) == text:
                return table
        return None

    @staticmethod
    def label(table: Table) -> str:
        return table.label


Strategy = Callable[[TableRef, str, "str | None"], "Table | None"]


class TableResolver:
    """Resolve a table reference within a target zone, first matching strategy wins."""

    def __init__(
        self,
        floor_plan: FloorPlan,
        refresh: Callable[[str], Sequence[Table]] | None = None,
    ) -> None:
        self.floor_plan = floor_plan
        # Fresh read of a zone's tables for the drift retry; defaults to the cached plan.
        self._refresh = refresh or floor_plan.tables_in
        self.strategies: list[Strategy] = [
            self._by_id_in_zone,
            self._by_number_in_zone,
            self._via_table_anywhere,
            self._number_retry_for_own_zone,
        ]

    def resolve(self, raw_ref: object, target_zone_id: str, zone_hint: str | None = None) -> Table | None:
        ref = parse_table_ref(raw_ref)
        for strategy in self.strategies:
            table = strategy(ref, str(target_zone_id), zone_hint)
            if table is not None:
                return table
        return None

    def resolve_anywhere(self, raw_ref: object) -> Table | None:
        return self.floor_plan.resolve_anywhere(raw_ref)

    def resolve_for_candidate(self, raw_ref: object, zone_id: str | None) -> Table | None:
        """Resolve a reference being booked: prefer the booking's zone, else anywhere."""
        if zone_id is not None:
            table = self.resolve(raw_ref, zone_id, zone_id)
            if table is not None:
                return table
        return self.resolve_anywhere(raw_ref)

    def _by_id_in_zone(self, ref: TableRef, zone_id: str, zone_hint: str | None) -> Table | None:
        if isinstance(ref, ByName):
            return None
        text = ref_text(ref)
        for table in self.floor_plan.tables_in(zone_id):
            if table.id == text:
                return table
        return None

    def _by_number_in_zone(self, ref: TableRef, zone_id: str, zone_hint: str | None) -> Table | None:
        if not isinstance(ref, ByNumber):
            return None
        return _match_number(self.floor_plan.tables_in(zone_id), ref.value)

    def _via_table_anywhere(self, ref: TableRef, zone_id: str, zone_hint: str | None) -> Table | None:
        if isinstance(ref, ByName):
            found = _match_name(self.floor_plan.all_tables(), ref.value)
        else:
            found = self.resolve_anywhere(ref)
        if found is None:
            return None
        current = self.floor_plan.tables_in(zone_id)
        if found.number is not None:
            by_number = _match_number(current, found.number)
            if by_number is not None:
                return by_number
        if found.name and found.name.strip():
            return _match_name(current, found.name)
        return None

    def _number_retry_for_own_zone(self, ref: TableRef, zone_id: str, zone_hint: str | None) -> Table | None:
        if zone_hint is None or str(zone_hint) != zone_id or not isinstance(ref, ByNumber):
            return None
        return _match_number(self._refresh(zone_id), ref.value)


def _match_number(tables: Iterable[Table], number: int) -> Table | None:
    for table in tables:
        if table.number == number:
            return table
    return None


def _match_name(tables: Iterable[Table], name: str) -> Table | None:
    for table in tables:
        if (table.name or "") == name:
            return table
    return None
