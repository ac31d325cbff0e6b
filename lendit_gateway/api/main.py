"""FastAPI application factory"""

import uvicorn
from fastapi import FastAPI
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from sqlalchemy.orm import sessionmaker
from starlette.responses import Response

from lendit_gateway.api.middleware import RequestIDMiddleware, MetricsMiddleware
from lendit_gateway.api.v1 import agreements, payments, trust
from lendit_gateway.infrastructure.database.models import Base
from lendit_gateway.infrastructure.database.session import build_engine, build_session_factory
from lendit_gateway.infrastructure.observability.logging import setup_logging
from lendit_gateway.config import Settings, settings as default_settings


def create_app(config: Settings | None = None, session_factory: sessionmaker | None = None) -> FastAPI:
    """Create and configure FastAPI application"""
    config = config or default_settings
    setup_logging(config.log_level, service_name=config.service_name)

    app = FastAPI(
        title="LendIt Gateway",
        description="Peer-to-peer loan lifecycle and trust score service",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    if session_factory is None:
        engine = build_engine(config.database_url)
        Base.metadata.create_all(bind=engine)
        session_factory = build_session_factory(engine)
    app.state.session_factory = session_factory
    app.state.settings = config

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": config.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(agreements.router, prefix="/v1", tags=["agreements"])
    app.include_router(payments.router, prefix="/v1", tags=["payments"])
    app.include_router(trust.router, prefix="/v1", tags=["trust-scores"])

    return app


def run() -> None:
    """Serve the app with uvicorn in factory mode"""
    uvicorn.run("lendit_gateway.api.main:create_app", factory=True, host="0.0.0.0", port=8000)
