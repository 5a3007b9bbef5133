from datetime import datetime, timezone

from fastapi import APIRouter

from chat_gateway.schemas import HealthStatus

router = APIRouter(tags=["utils"])


@router.get("/health", response_model=HealthStatus)
async def health_check() -> HealthStatus:
    return HealthStatus(status="healthy", timestamp=datetime.now(timezone.utc).isoformat())
