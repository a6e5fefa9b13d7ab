from fastapi import APIRouter
from promproxy.app.core.metrics import metrics

router = APIRouter()


@router.get("/metrics")
async def get_metrics() -> dict:
    """Request, auth and upstream query counters."""
    return metrics.get_metrics()
