from fastapi import APIRouter, Depends, HTTPException, Query, status

from backend.app.routers.deps import get_adjustment_store, get_reservation_source
from backend.app.routers.schemas import BlockOut, IntervalOut, TimelineOut, TimelineRowOut
from backend.app.services.adjustments import AdjustmentStore
from backend.app.services.intervals import previous_day
from backend.app.services.reservations import ReservationSource
from backend.app.services.tables import TableResolver
from backend.app.services.timeline import TimelineRow, load_timeline


router = APIRouter()


def _row_out(row: TimelineRow) -> TimelineRowOut:
    return TimelineRowOut(
        table_id=row.table.id,
        table_label=row.table.label,
        guests=row.guests,
        blocks=[
            BlockOut(
                reservation_id=b.reservation_id,
                guest_name=b.guest_name,
                guest_count=b.guest_count,
                status=b.status.value,
                is_event=b.is_event,
                spillover=b.spillover,
                interval=IntervalOut(start=b.interval.start, end=b.interval.end, label=b.interval.label()),
                source_date=b.source_date,
            )
            for b in row.blocks
        ],
    )


@router.get("/timeline/{date}", response_model=TimelineOut)
async def get_timeline(
    date: str,
    zone_id: str = Query(min_length=1),
    store: AdjustmentStore = Depends(get_adjustment_store),
    source: ReservationSource = Depends(get_reservation_source),
) -> TimelineOut:
    if previous_day(date) is None:
        raise HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, detail="date must be YYYY-MM-DD")

    plan = await source.floor_plan()
    zone = plan.zone(zone_id)
    if zone is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, detail=f"Unknown zone {zone_id}")

    reservations = await source.reservations_around(date)
    rows = await load_timeline(store, date, zone_id, reservations, TableResolver(plan))
    return TimelineOut(date=date, zone_id=zone_id, zone_name=zone.name, rows=[_row_out(r) for r in rows])
