from datetime import datetime
from typing import Callable
from zoneinfo import ZoneInfo

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.config import settings
from backend.app.db.session import get_session
from backend.app.services.adjustments import AdjustmentStore
from backend.app.services.reservations import SqlReservationSource


def get_adjustment_store(request: Request) -> AdjustmentStore:
    store = getattr(request.app.state, "adjustment_store", None)
    if store is None:
        raise HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail="Adjustment store unavailable")
    return store


async def get_reservation_source(session: AsyncSession = Depends(get_session)) -> SqlReservationSource:
    return SqlReservationSource(session)


def get_clock() -> Callable[[], datetime]:
    tz = ZoneInfo(settings.TIMEZONE)
    return lambda: datetime.now(tz)
