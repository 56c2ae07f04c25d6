"""FastAPI application factory"""

from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from starlette.responses import Response

from chargeback_engine.api.middleware import RequestIDMiddleware, MetricsMiddleware
from chargeback_engine.api.v1 import audit, decision, representment
from chargeback_engine.infrastructure.observability.logging import setup_logging
from chargeback_engine.config import settings

# Setup structured logging
setup_logging(settings.log_level)


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Chargeback Decision Engine",
        description="Chargeback decisions, temporary credits and representment workflow",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(decision.router, prefix="/v1", tags=["decisions"])
    app.include_router(representment.router, prefix="/v1", tags=["representments"])
    app.include_router(audit.router, prefix="/v1", tags=["audit"])

    return app


app = create_app()
