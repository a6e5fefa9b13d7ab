from fastapi import APIRouter, Request
from typing import Dict

router = APIRouter()


@router.get("/health")
async def health_check(request: Request) -> Dict[str, str]:
    """Liveness only; Prometheus is not contacted."""
    settings = request.app.state.settings
    return {
        "status": "ok",
        "auth": "enabled" if settings.secure_api_with_key else "disabled",
    }
