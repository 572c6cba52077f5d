"""Health check endpoints."""
from datetime import datetime

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy import text

from kubeforge.container import Container, get_container

router = APIRouter(tags=["System"])


@router.get("/health")
async def health_check(container: Container = Depends(get_container)):
    """Liveness check."""
    return {
        "status": "healthy",
        "version": container.settings.APP_VERSION,
        "running_jobs": container.runner.running,
        "timestamp": datetime.utcnow().isoformat(),
    }


@router.get("/health/ready")
async def readiness_check(container: Container = Depends(get_container)):
    """Readiness check against the database."""
    try:
        async with container.session_factory() as session:
            await session.execute(text("SELECT 1"))
    except Exception as e:
        return JSONResponse(status_code=503, content={"status": "not_ready", "error": str(e)})
    return {"status": "ready", "checks": {"database": True}}
