"""
Health check endpoints for liveness and readiness probes.
"""
from typing import Annotated

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from memo_relay.core.config import Settings, get_settings
from memo_relay.core.database import check_db_connection, get_db
from memo_relay.core.logging import get_logger
from memo_relay.schemas.message import HealthResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])


@router.get(
    "/live",
    response_model=HealthResponse,
    summary="Liveness probe",
    description="Always returns 200 to indicate the service is alive."
)
async def liveness() -> HealthResponse:
    return HealthResponse(status="ok")


@router.get(
    "/ready",
    response_model=HealthResponse,
    summary="Readiness probe",
    description="Returns 200 if the relay can accept webhooks and serve the consumer."
)
async def readiness(
    response: Response,
    db: Annotated[Session, Depends(get_db)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> HealthResponse:
    """
    Readiness probe.
    
    Checks:
    - the key-value store is reachable
    - CHANNEL_SECRET is configured (webhooks would all be rejected otherwise)
    - API_TOKEN is configured (pull/ack would all be rejected otherwise)
    """
    checks = {
        "store": "ok" if check_db_connection(db) else "failed",
        "channel_secret": "ok" if settings.is_channel_secret_configured else "not configured",
        "api_token": "ok" if settings.is_api_token_configured else "not configured",
    }
    
    failed = [name for name, state in checks.items() if state != "ok"]
    if not failed:
        return HealthResponse(status="ok", checks=checks)
    
    logger.warning("Readiness check failed", extra={"extra_data": {"failed_checks": failed}})
    response.status_code = 503
    return HealthResponse(status="not ready", checks=checks)
