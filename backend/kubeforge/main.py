"""FastAPI application factory and configuration."""
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from kubeforge.api import clusters, health, node_groups
from kubeforge.config import settings
from kubeforge.container import get_container
from kubeforge.database import init_db
from kubeforge.exceptions import KubeForgeError
from kubeforge.orchestration.jobs import recover_interrupted

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
)
logging.getLogger("sqlalchemy").setLevel(logging.ERROR)
logging.getLogger("uvicorn.access").setLevel(logging.ERROR)  # Suppress HTTP access logs
logging.getLogger("httpx").setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    app = FastAPI(
        title=f"{settings.APP_NAME} API",
        description="Kubernetes cluster lifecycle on OpenStack",
        version=settings.APP_VERSION,
        debug=settings.DEBUG,
    )

    # Middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routes
    app.include_router(health.router)
    app.include_router(clusters.router)
    app.include_router(node_groups.router)

    @app.exception_handler(KubeForgeError)
    async def kubeforge_error_handler(request: Request, exc: KubeForgeError):
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    @app.on_event("startup")
    async def startup_event():
        """Create tables and settle orchestrations interrupted by a restart."""
        container = get_container()
        await init_db()
        await recover_interrupted(container.repository, container.recorder)

    @app.on_event("shutdown")
    async def shutdown_event():
        await get_container().close()

    return app


if __name__ == "__main__":
    import uvicorn
    app = create_app()
    uvicorn.run(app, host="0.0.0.0", port=3000)
