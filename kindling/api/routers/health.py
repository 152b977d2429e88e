# kindling/api/routers/health.py

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health(request: Request):
    """Health check: database reachability and audit backlog, plus correlation ID from request state."""
    settings = request.app.state.settings
    report = await request.app.state.health_monitor.system_health()
    return {
        **report,
        "correlation_id": request.state.correlation_id,
        "environment": settings.environment,
        "version": settings.version,
    }
