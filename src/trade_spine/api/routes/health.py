"""Health check endpoints."""

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/")
@router.get("/health")
async def health_check():
    """Basic health check."""
    return {"status": "healthy"}


@router.get("/health/ready")
def readiness_check(request: Request):
    """
    Readiness check - verifies database connectivity.
    """
    gateway = request.app.state.gateway
    if gateway is None:
        db_status = "not_configured"
    else:
        try:
            gateway.ping()
            db_status = "connected"
        except Exception as e:
            db_status = f"error: {str(e)}"

    return {
        "status": "ready" if db_status == "connected" else "not_ready",
        "database": db_status,
    }


@router.get("/health/live")
async def liveness_check():
    """Liveness check - basic process health."""
    return {"status": "alive"}
