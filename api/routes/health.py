"""
Health and readiness endpoints for load balancers and Kubernetes.
No CSRF token needed (GET only); keep payload minimal for fast checks.
"""

from fastapi import APIRouter, Response, status

from core.dependencies import LifecycleDep, SettingsDep
from models.schemas import HealthResponse, ReadinessResponse

router = APIRouter(prefix="/health", tags=["health"])


@router.get("", response_model=HealthResponse)
async def health(settings: SettingsDep, lifecycle: LifecycleDep) -> HealthResponse:
    """
    Liveness: is the process alive, and where is it in its startup sequence.
    """
    return HealthResponse(
        service=settings.APP_NAME,
        environment=settings.ENVIRONMENT,
        lifecycle=lifecycle.state.value,
    )


@router.get("/ready", response_model=ReadinessResponse)
async def ready(lifecycle: LifecycleDep, response: Response) -> ReadinessResponse:
    """Readiness: only after the database handshake succeeded and the port is bound."""
    checks = {"database": lifecycle.state.value}
    if lifecycle.failure is not None:
        checks["failure"] = str(lifecycle.failure)
    if not lifecycle.is_listening:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    return ReadinessResponse(ready=lifecycle.is_listening, checks=checks)
