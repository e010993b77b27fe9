import logging

from fastapi import APIRouter, Depends, HTTPException, status

from backend.app.routers.deps import get_adjustment_store, get_reservation_source
from backend.app.routers.schemas import ConflictCheckIn, ConflictOut
from backend.app.services.adjustments import AdjustmentStore
from backend.app.services.conflicts import ConflictDetector, ConflictInfo, check_conflicts
from backend.app.services.intervals import Interval, effective_interval, previous_day
from backend.app.services.models import Reservation
from backend.app.services.reservations import ReservationSource
from backend.app.services.tables import TableResolver


logger = logging.getLogger(__name__)

router = APIRouter()


def conflict_detail(conflict: ConflictInfo) -> dict:
    return ConflictOut(
        table_id=conflict.table.id,
        table_label=conflict.table_label,
        reservation_id=conflict.reservation_id,
        guest_name=conflict.guest_name,
        kind=conflict.kind.value,
        time_range=conflict.time_range,
        message=conflict.message,
    ).model_dump()


def _candidate_window(payload: ConflictCheckIn) -> Interval:
    if payload.start is not None and payload.end is not None:
        if payload.end <= payload.start:
            raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, detail="end must be after start")
        return Interval(payload.start, payload.end)
    draft = Reservation(id="draft", date=payload.date, time=payload.time, guest_count=payload.guest_count)
    return effective_interval(draft)


@router.post("/conflicts/check")
async def check_conflict(
    payload: ConflictCheckIn,
    store: AdjustmentStore = Depends(get_adjustment_store),
    source: ReservationSource = Depends(get_reservation_source),
) -> dict[str, bool]:
    if previous_day(payload.date) is None:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, detail="date must be YYYY-MM-DD")

    candidate = _candidate_window(payload)
    reservations = await source.reservations_around(payload.date)
    detector = ConflictDetector(reservations, TableResolver(await source.floor_plan()))

    original = None
    if payload.reservation_id is not None:
        original = next((r for r in reservations if r.id == payload.reservation_id), None)

    conflict = await check_conflicts(
        detector,
        store,
        candidate,
        payload.table_ids,
        payload.date,
        zone_id=payload.zone_id,
        exclude_reservation_id=payload.reservation_id,
        original=original,
    )
    if conflict is None:
        return {"ok": True}

    logger.info("Conflict on %s table %s: %s", payload.date, conflict.table_label, conflict.message)
    raise HTTPException(status.HTTP_409_CONFLICT, detail=conflict_detail(conflict))
