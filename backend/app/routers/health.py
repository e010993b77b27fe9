import logging

from fastapi import APIRouter, Depends, HTTPException

from backend.app.routers.deps import get_adjustment_store
from backend.app.services.adjustments import AdjustmentStore


logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/healthz")
async def healthz() -> dict[str, bool]:
    """Basic liveness check."""
    return {"ok": True}


@router.get("/readiness")
async def readiness(store: AdjustmentStore = Depends(get_adjustment_store)) -> dict[str, bool]:
    """Ensure the adjustment backend is reachable."""
    try:
        ready = await store.ping()
    except Exception as exc:
        logger.warning("Readiness check failed: %s", exc)
        raise HTTPException(status_code=503, detail="Adjustment store unavailable") from exc
    if not ready:
        raise HTTPException(status_code=503, detail="Adjustment store unavailable")
    return {"ready": True}
