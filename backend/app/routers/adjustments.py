import logging
from datetime import datetime
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException, status

from backend.app.routers.conflicts import conflict_detail
from backend.app.routers.deps import get_adjustment_store, get_clock, get_reservation_source
from backend.app.routers.schemas import AdjustmentIn, AdjustmentOut, ExtendIn
from backend.app.services.adjustments import (
    AdjustmentStore,
    clear_next_day_extension,
    extend_to_next_day,
)
from backend.app.services.conflicts import ConflictDetector, check_conflicts
from backend.app.services.errors import AdjustmentPersistenceError, InvalidAdjustmentError
from backend.app.services.intervals import Interval, parse_time_to_minutes, previous_day
from backend.app.services.models import Adjustment, Reservation
from backend.app.services.reservations import ReservationSource
from backend.app.services.tables import TableResolver


logger = logging.getLogger(__name__)

router = APIRouter()

SOURCE = "api"


def _out(date: str, reservation_id: str, adjustment: Adjustment) -> AdjustmentOut:
    return AdjustmentOut(reservation_id=reservation_id, date=date, start=adjustment.start, end=adjustment.end)


async def _require_reservation(source: ReservationSource, reservation_id: str, date: str) -> Reservation:
    if previous_day(date) is None:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, detail="date must be YYYY-MM-DD")
    reservation = await source.reservation(reservation_id, date)
    if reservation is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Unknown reservation {reservation_id} on {date}")
    return reservation


def _persistence_failed(exc: AdjustmentPersistenceError) -> HTTPException:
    return HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))


@router.get("/adjustments/{date}", response_model=list[AdjustmentOut])
async def list_adjustments(
    date: str,
    store: AdjustmentStore = Depends(get_adjustment_store),
) -> list[AdjustmentOut]:
    rows = await store.get_adjustments_for_date(date)
    return [_out(date, rid, adj) for rid, adj in sorted(rows.items())]


@router.put("/adjustments/{date}/{reservation_id}", response_model=AdjustmentOut)
async def put_adjustment(
    date: str,
    reservation_id: str,
    payload: AdjustmentIn,
    store: AdjustmentStore = Depends(get_adjustment_store),
    source: ReservationSource = Depends(get_reservation_source),
    clock: Callable[[], datetime] = Depends(get_clock),
) -> AdjustmentOut:
    reservation = await _require_reservation(source, reservation_id, date)

    now = clock()
    if reservation.is_seated and now.date().isoformat() == date:
        now_minutes = now.hour * 60 + now.minute
        if payload.end < now_minutes:
            raise HTTPException(
                status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail="A seated reservation cannot end before the current time",
            )

    candidate = Interval(payload.start, payload.end)
    detector = ConflictDetector(await source.reservations_around(date), TableResolver(await source.floor_plan()))
    conflict = await check_conflicts(
        detector,
        store,
        candidate,
        reservation.table_ids,
        date,
        zone_id=reservation.zone_id,
        exclude_reservation_id=reservation_id,
        original=reservation,
    )
    if conflict is not None:
        logger.info("Rejected adjustment %s on %s: %s", reservation_id, date, conflict.message)
        raise HTTPException(status.HTTP_409_CONFLICT, detail=conflict_detail(conflict))

    try:
        adjustment = await store.upsert_adjustment(
            date, reservation_id, Adjustment(start=payload.start, end=payload.end), source=SOURCE
        )
    except InvalidAdjustmentError as exc:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except AdjustmentPersistenceError as exc:
        raise _persistence_failed(exc) from exc
    return _out(date, reservation_id, adjustment)


@router.post("/adjustments/{date}/{reservation_id}/extend", response_model=AdjustmentOut)
async def extend_adjustment(
    date: str,
    reservation_id: str,
    payload: ExtendIn,
    store: AdjustmentStore = Depends(get_adjustment_store),
    source: ReservationSource = Depends(get_reservation_source),
) -> AdjustmentOut:
    reservation = await _require_reservation(source, reservation_id, date)
    try:
        adjustment = await extend_to_next_day(
            store, reservation, parse_time_to_minutes(payload.until), source=SOURCE
        )
    except InvalidAdjustmentError as exc:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc
    except AdjustmentPersistenceError as exc:
        raise _persistence_failed(exc) from exc

    logger.info("Reservation %s on %s extended until %s next day", reservation_id, date, payload.until)
    return _out(date, reservation_id, adjustment)


@router.delete("/adjustments/{date}/{reservation_id}/extend", response_model=AdjustmentOut)
async def remove_extension(
    date: str,
    reservation_id: str,
    store: AdjustmentStore = Depends(get_adjustment_store),
    source: ReservationSource = Depends(get_reservation_source),
) -> AdjustmentOut:
    reservation = await _require_reservation(source, reservation_id, date)
    try:
        adjustment = await clear_next_day_extension(store, reservation, source=SOURCE)
    except AdjustmentPersistenceError as exc:
        raise _persistence_failed(exc) from exc
    if adjustment is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail="Reservation does not extend into the next day")
    return _out(date, reservation_id, adjustment)
