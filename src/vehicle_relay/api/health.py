"""Health check endpoints."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel

from vehicle_relay import __version__
from vehicle_relay.dependencies import DispatchServiceDep, QuotaMonitorDep, SettingsDep

router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    timestamp: str
    version: str
    environment: str
    providers: dict[str, Any]
    quotas: dict[str, Any]
    config: dict[str, Any]


@router.get("/health")
async def health_check(
    dispatch: DispatchServiceDep,
    quota: QuotaMonitorDep,
    settings: SettingsDep,
) -> HealthResponse:
    """Perform health check.

    The service is healthy while at least one provider is reachable.
    """
    report = await dispatch.check_overall_health()
    quotas = await quota.service_status()

    return HealthResponse(
        status="healthy" if report.overall else "unhealthy",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=__version__,
        environment=settings.environment,
        providers=report.to_dict()["providers"],
        quotas=quotas["quotas"],
        config=dispatch.get_config().to_dict(),
    )
