from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping

from backend.app.services.adjustments import AdjustmentStore
from backend.app.services.intervals import (
    Interval,
    day_key,
    effective_interval,
    previous_day,
    spillover_window,
)
from backend.app.services.models import Adjustment, Reservation, ReservationStatus, Table
from backend.app.services.tables import TableResolver


@dataclass(frozen=True)
class TimelineBlock:
    reservation_id: str
    guest_name: str
    guest_count: int
    status: ReservationStatus
    is_event: bool
    interval: Interval
    spillover: bool = False
    # For spillover blocks: the day and full window the block really belongs to.
    source_date: str | None = None
    source_interval: Interval | None = None

    @property
    def is_seated(self) -> bool:
        return self.status == ReservationStatus.SEATED


@dataclass
class TimelineRow:
    table: Table
    blocks: list[TimelineBlock] = field(default_factory=list)

    @property
    def guests(self) -> int:
        return sum(b.guest_count for b in self.blocks)

    def neighbors_of(self, reservation_id: str) -> list[TimelineBlock]:
        return [b for b in self.blocks if b.reservation_id != reservation_id]

    def block_for(self, reservation_id: str) -> TimelineBlock | None:
        for block in self.blocks:
            if block.reservation_id == reservation_id:
                return block
        return None


def _block(reservation: Reservation, interval: Interval, **extra) -> TimelineBlock:
    return TimelineBlock(
        reservation_id=reservation.id,
        guest_name=reservation.guest_name,
        guest_count=reservation.guest_count or 0,
        status=reservation.status,
        is_event=reservation.is_event,
        interval=interval,
        **extra,
    )


def build_timeline(
    date: str,
    zone_id: str,
    reservations: Iterable[Reservation],
    resolver: TableResolver,
    adjustments: Mapping[str, Adjustment],
    previous_adjustments: Mapping[str, Adjustment],
) -> list[TimelineRow]:
    """Rows for every table of ``zone_id`` with the blocks occupying it on ``date``."""
    key = day_key(date)
    prev_key = previous_day(key)
    rows = {t.id: TimelineRow(t) for t in resolver.floor_plan.sorted_tables(zone_id)}

    for reservation in reservations:
        if not reservation.is_active:
            continue
        if reservation.date == key:
            block = _block(reservation, effective_interval(reservation, adjustments.get(reservation.id)))
        elif prev_key is not None and reservation.date == prev_key:
            # Adjustments of the spilled block live on the previous day only.
            source = effective_interval(reservation, previous_adjustments.get(reservation.id))
            window = spillover_window(source)
            if window is None:
                continue
            block = _block(
                reservation,
                window,
                spillover=True,
                source_date=prev_key,
                source_interval=source,
            )
        else:
            continue

        placed: set[str] = set()
        for ref in reservation.table_ids:
            table = resolver.resolve(ref, zone_id, reservation.zone_id)
            if table is None or table.id in placed or table.id not in rows:
                continue
            placed.add(table.id)
            rows[table.id].blocks.append(block)

    for row in rows.values():
        row.blocks.sort(key=lambda b: (b.interval.start, b.interval.end))
    return list(rows.values())


def followers_of(rows: Iterable[TimelineRow], reservation_id: str) -> list[TimelineBlock]:
    """Blocks sharing at least one table with ``reservation_id``."""
    seen: set[str] = set()
    out: list[TimelineBlock] = []
    for row in rows:
        if row.block_for(reservation_id) is None:
            continue
        for block in row.neighbors_of(reservation_id):
            if block.reservation_id not in seen:
                seen.add(block.reservation_id)
                out.append(block)
    return out


async def load_timeline(
    store: AdjustmentStore,
    date: str,
    zone_id: str,
    reservations: Iterable[Reservation],
    resolver: TableResolver,
) -> list[TimelineRow]:
    key = day_key(date)
    prev_key = previous_day(key)
    adjustments = await store.get_adjustments_for_date(key)
    previous = await store.get_adjustments_for_date(prev_key) if prev_key else {}
    return build_timeline(key, zone_id, reservations, resolver, adjustments, previous)
