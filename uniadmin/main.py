"""
University Administration Platform - Main Application Entry Point
Cross-department identity, enrollment workflow and central reporting
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from typing import Optional
import logging
import time
import structlog

from uniadmin.core.config import get_settings
from uniadmin.core.errors import UniAdminError, uniadmin_exception_handler
from uniadmin.core.events import event_bus, subscribe_audit_log
from uniadmin.core.partitions import PartitionRegistry
from uniadmin.api import aggregate, enrollment_requests, modules

settings = get_settings()

# Configure structured logging
logging.basicConfig(format="%(message)s", level=logging.DEBUG if settings.DEBUG else logging.INFO)
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer()
    ],
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager"""
    # Startup
    logger.info("Initializing University Administration Platform backend")
    owns_registry = getattr(app.state, "registry", None) is None
    if owns_registry:
        app.state.registry = PartitionRegistry.from_settings(settings)

    yield

    # Shutdown
    logger.info("Shutting down University Administration Platform backend")
    if owns_registry:
        app.state.registry.dispose()
        app.state.registry = None


def create_app(registry: Optional[PartitionRegistry] = None) -> FastAPI:
    """Build the application; a registry may be injected (tests, embedding)"""
    app = FastAPI(
        title="University Administration API",
        description="Multi-department enrollment workflow and institution-wide reporting",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.registry = registry

    # Configure middleware stack
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def log_requests(request: Request, call_next):
        start_time = time.time()
        response = await call_next(request)
        process_time = time.time() - start_time
        response.headers["X-Process-Time"] = str(process_time)
        logger.info(f"{request.method} {request.url.path} - {response.status_code} - {process_time:.3f}s")
        return response

    app.add_exception_handler(UniAdminError, uniadmin_exception_handler)
    subscribe_audit_log(event_bus)

    # Include routers
    prefix = settings.API_V1_PREFIX
    app.include_router(modules.router, prefix=f"{prefix}/modules", tags=["modules"])
    app.include_router(enrollment_requests.router, prefix=f"{prefix}/enrollment-requests", tags=["enrollment-requests"])
    app.include_router(aggregate.router, prefix=f"{prefix}/aggregate", tags=["aggregate"])

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint"""
        registry = request.app.state.registry
        return {
            "status": "healthy",
            "service": "uniadmin-api",
            "departments": registry.codes() if registry else [],
        }

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "message": "University Administration API",
            "version": "1.0.0",
            "docs": "/docs",
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "uniadmin.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.ENVIRONMENT == "development",
        log_level="info",
    )
