"""Pointer-driven move/resize of a reservation block on a table's timeline.

A drag has two phases. While the pointer moves, ``propose_interval`` turns
the pointer position into a snapped candidate clamped between the nearest
blocks on the same table (and, on today's timeline, not before now); the
candidate is pushed to a preview callback at most once per scheduled frame.
On release, ``commit_interval`` writes the final window to the adjustment
store. A failed write keeps the optimistic value in ``overrides``; nothing is
rolled back or retried here.
"""
from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Generic, Iterable, Sequence, TypeVar

from backend.app.services.adjustments import AdjustmentStore
from backend.app.services.errors import AdjustmentPersistenceError
from backend.app.services.intervals import (
    DAY_MINUTES,
    MAX_END_MINUTES,
    MIN_BLOCK_MINUTES,
    SNAP_STEP_MINUTES,
    Interval,
    clamp,
    day_key,
    minutes_to_time,
    snap_minutes,
)
from backend.app.services.models import Adjustment
from backend.app.services.timeline import TimelineBlock


logger = logging.getLogger(__name__)

T = TypeVar("T")
Scheduler = Callable[[Callable[[], None]], Any]


class DragMode(str, Enum):
    MOVE = "move"
    RESIZE_START = "resize-start"
    RESIZE_END = "resize-end"


class DragState(str, Enum):
    IDLE = "idle"
    DRAGGING = "dragging"


@dataclass(frozen=True)
class TrackGeometry:
    width_px: float
    left_px: float = 0.0

    @property
    def minutes_per_px(self) -> float:
        return DAY_MINUTES / max(1.0, self.width_px)

    def pointer_minutes(self, client_x: float) -> float:
        raw = (client_x - self.left_px) * self.minutes_per_px
        if not math.isfinite(raw):
            return 0.0
        return clamp(raw, 0, DAY_MINUTES)


@dataclass(frozen=True)
class NeighborBounds:
    prev_end: int = 0
    next_start: int = DAY_MINUTES


def neighbor_bounds(block: Interval, others: Iterable[Interval]) -> NeighborBounds:
    """Nearest end among blocks starting earlier, nearest start among blocks starting later."""
    prev_end = 0
    next_start = DAY_MINUTES
    for other in others:
        if other.start < block.start:
            prev_end = max(prev_end, other.end)
        elif other.start > block.start:
            next_start = min(next_start, other.start)
    return NeighborBounds(prev_end=prev_end, next_start=next_start)


def clamp_move(initial: Interval, delta: float, bounds: NeighborBounds, now_floor: int = 0) -> Interval:
    """Shift by the snapped delta; only the neighbor in the direction of travel stops the block."""
    width = max(MIN_BLOCK_MINUTES, initial.duration)
    step = snap_minutes(delta)
    if step == 0:
        return Interval(initial.start, initial.start + width)
    start = initial.start + step
    # A neighbor that already overlaps holds the block where it is.
    if step < 0:
        start = max(start, min(bounds.prev_end, initial.start))
    else:
        start = min(start, max(bounds.next_start - width, initial.start))
    low = max(0, now_floor)
    high = max(DAY_MINUTES, initial.end) - width
    start = int(clamp(start, low, max(low, high)))
    return Interval(start, start + width)


def clamp_resize_start(initial: Interval, target: float, bounds: NeighborBounds, now_floor: int = 0) -> Interval:
    start = snap_minutes(target)
    if start == initial.start:
        return initial
    if start < initial.start:
        start = max(start, bounds.prev_end)
    start = max(start, now_floor, 0)
    # The fixed edge wins when the floors leave no room.
    start = min(start, initial.end - MIN_BLOCK_MINUTES, DAY_MINUTES)
    return Interval(start, initial.end)


def clamp_resize_end(
    initial: Interval,
    target: float,
    bounds: NeighborBounds,
    min_end: int | None = None,
) -> Interval | None:
    """``None`` when a seated block's now-line leaves the right edge nowhere to go."""
    end = snap_minutes(target)
    if end == initial.end:
        return initial
    if end > initial.end:
        if initial.end > DAY_MINUTES:
            # Next-day extensions are edited through the extend operation, not by dragging.
            return initial
        high = min(bounds.next_start, DAY_MINUTES)
    else:
        high = initial.end
    floor = initial.start + MIN_BLOCK_MINUTES
    if min_end is not None:
        floor = max(floor, min_end)
        if high <= floor:
            return None
    end = max(floor, min(high, end))
    return Interval(initial.start, end)


class FrameThrottle(Generic[T]):
    """Coalesce updates so at most one frame is pending; the frame publishes the latest value."""

    def __init__(self, publish: Callable[[T], None], schedule: Scheduler | None = None) -> None:
        self._publish = publish
        self._schedule = schedule or _call_soon
        self._pending = False
        self._handle: Any = None
        self._latest: T | None = None

    @property
    def pending(self) -> bool:
        return self._pending

    def request(self, value: T) -> None:
        self._latest = value
        if self._pending:
            return
        self._pending = True
        self._handle = self._schedule(self._flush)

    def cancel(self) -> None:
        if self._pending and self._handle is not None and hasattr(self._handle, "cancel"):
            self._handle.cancel()
        self._pending = False
        self._handle = None

    def _flush(self) -> None:
        if not self._pending:
            return
        self._pending = False
        self._handle = None
        self._publish(self._latest)


def _call_soon(callback: Callable[[], None]) -> Any:
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        callback()
        return None
    return loop.call_soon(callback)


@dataclass(frozen=True)
class ShiftedBlock:
    reservation_id: str
    interval: Interval
    new_time: str


@dataclass(frozen=True)
class CommitResult:
    reservation_id: str
    date: str
    interval: Interval
    changed: bool
    persisted: bool
    # Base time to write back to the reservation after a move or left-edge resize.
    new_time: str | None = None
    shifted: tuple[ShiftedBlock, ...] = ()
    error: AdjustmentPersistenceError | None = None
    shift_errors: tuple[AdjustmentPersistenceError, ...] = ()

    @property
    def ok(self) -> bool:
        return self.persisted


def plan_follower_shifts(
    followers: Iterable[TimelineBlock],
    previous_end: int,
    new_end: int,
) -> list[ShiftedBlock]:
    """Push later, not-yet-seated blocks that now start inside an extended seating."""
    shifts: list[ShiftedBlock] = []
    if new_end <= previous_end:
        return shifts
    for block in followers:
        if block.is_seated or block.spillover:
            continue
        start, end = block.interval.start, block.interval.end
        if not (previous_end <= start < new_end):
            continue
        offset = new_end - start
        moved_end = max(new_end + MIN_BLOCK_MINUTES, min(DAY_MINUTES, end + offset))
        shifts.append(ShiftedBlock(block.reservation_id, Interval(new_end, moved_end), minutes_to_time(new_end)))
    return shifts


class DragController:
    def __init__(
        self,
        store: AdjustmentStore,
        date: str,
        *,
        clock: Callable[[], datetime] | None = None,
        on_preview: Callable[[str, Interval], None] | None = None,
        schedule: Scheduler | None = None,
        source: str = "timeline",
    ) -> None:
        self.store = store
        self.date = day_key(date)
        self.clock = clock or datetime.now
        self.on_preview = on_preview
        self.source = source
        self.state = DragState.IDLE
        self.mode: DragMode | None = None
        # Last value each block was dragged to, kept even when the store rejected it.
        self.overrides: dict[str, Interval] = {}

        self._throttle: FrameThrottle[tuple[str, Interval]] = FrameThrottle(self._emit_preview, schedule)
        self._block: TimelineBlock | None = None
        self._initial: Interval | None = None
        self._current: Interval | None = None
        self._bounds = NeighborBounds()
        self._track: TrackGeometry | None = None
        self._start_pointer = 0.0
        self._followers: list[TimelineBlock] = []

    @property
    def current(self) -> Interval | None:
        return self._current

    def is_today(self) -> bool:
        return self.clock().date().isoformat() == self.date

    def now_minutes(self) -> int:
        now = self.clock()
        return now.hour * 60 + now.minute

    def now_floor(self) -> int:
        return snap_minutes(self.now_minutes()) if self.is_today() else 0

    def can_begin(self, block: TimelineBlock, mode: DragMode) -> bool:
        if block.spillover:
            return False
        if block.is_seated and mode != DragMode.RESIZE_END:
            return False
        return True

    def begin(
        self,
        block: TimelineBlock,
        mode: DragMode,
        pointer_x: float,
        track: TrackGeometry,
        neighbors: Iterable[TimelineBlock] = (),
        followers: Sequence[TimelineBlock] = (),
    ) -> bool:
        if self.state == DragState.DRAGGING:
            raise RuntimeError(f"Block {self._block.reservation_id} is already being dragged")
        if not self.can_begin(block, mode):
            return False

        base = self.overrides.get(block.reservation_id, block.interval)
        start = snap_minutes(clamp(base.start, 0, DAY_MINUTES))
        end = snap_minutes(max(start + MIN_BLOCK_MINUTES, min(MAX_END_MINUTES, base.end)))
        self._initial = Interval(start, end)
        self._current = self._initial
        self._bounds = neighbor_bounds(
            self._initial,
            (self.overrides.get(n.reservation_id, n.interval) for n in neighbors if n.reservation_id != block.reservation_id),
        )
        self._block = block
        self._track = track
        self._start_pointer = track.pointer_minutes(pointer_x)
        self._followers = list(followers)
        self.mode = mode
        self.state = DragState.DRAGGING
        return True

    def propose_interval(self, pointer_x: float) -> Interval:
        """Candidate window for the pointer position; local and synchronous."""
        if self.state != DragState.DRAGGING:
            raise RuntimeError("No drag in progress")
        delta = self._track.pointer_minutes(pointer_x) - self._start_pointer
        initial = self._initial

        if self.mode == DragMode.MOVE:
            candidate = clamp_move(initial, delta, self._bounds, self.now_floor())
        elif self.mode == DragMode.RESIZE_START:
            candidate = clamp_resize_start(initial, initial.start + delta, self._bounds, self.now_floor())
        else:
            min_end = None
            if self._block.is_seated and self.is_today():
                min_end = _ceil_step(self.now_minutes())
            candidate = clamp_resize_end(initial, initial.end + delta, self._bounds, min_end)
            if candidate is None:
                return self._current

        if candidate != self._current:
            self._current = candidate
            self._throttle.request((self._block.reservation_id, candidate))
        return candidate

    async def commit_interval(self) -> CommitResult:
        """Persist the final window on pointer release."""
        if self.state != DragState.DRAGGING:
            raise RuntimeError("No drag in progress")
        self._throttle.cancel()
        block, mode = self._block, self.mode
        initial, final = self._initial, self._current
        followers = self._followers
        self._reset()

        rid = block.reservation_id
        self.overrides[rid] = final
        new_time = minutes_to_time(final.start) if mode != DragMode.RESIZE_END else None
        base = dict(reservation_id=rid, date=self.date, interval=final, changed=final != initial, new_time=new_time)

        try:
            await self.store.upsert_adjustment(
                self.date, rid, Adjustment(start=final.start, end=final.end), source=self.source
            )
        except AdjustmentPersistenceError as exc:
            logger.warning("Keeping unsaved drag result for %s on %s: %s", rid, self.date, exc.reason)
            return CommitResult(persisted=False, error=exc, **base)

        logger.info("Block %s on %s committed at %s", rid, self.date, final.label())
        shifted: list[ShiftedBlock] = []
        errors: list[AdjustmentPersistenceError] = []
        if block.is_seated and mode == DragMode.RESIZE_END:
            for shift in plan_follower_shifts(followers, initial.end, final.end):
                self.overrides[shift.reservation_id] = shift.interval
                try:
                    await self.store.upsert_adjustment(
                        self.date,
                        shift.reservation_id,
                        Adjustment(start=shift.interval.start, end=shift.interval.end),
                        source=self.source,
                    )
                except AdjustmentPersistenceError as exc:
                    errors.append(exc)
                    continue
                shifted.append(shift)

        return CommitResult(persisted=True, shifted=tuple(shifted), shift_errors=tuple(errors), **base)

    def _emit_preview(self, update: tuple[str, Interval]) -> None:
        if self.on_preview is not None:
            self.on_preview(*update)

    def _reset(self) -> None:
        self.state = DragState.IDLE
        self.mode = None
        self._block = None
        self._initial = None
        self._current = None
        self._track = None
        self._followers = []
        self._bounds = NeighborBounds()


def _ceil_step(minutes: int, step: int = SNAP_STEP_MINUTES) -> int:
    return int(math.ceil(minutes / step)) * step
