"""FastAPI application factory"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from starlette.responses import Response

from bourso_desk.api.dependencies import get_desk_context
from bourso_desk.api.middleware import MetricsMiddleware, RequestIDMiddleware
from bourso_desk.api.v1 import accounts, jobs, performance, session, transfers
from bourso_desk.config import settings
from bourso_desk.infrastructure.observability.logging import setup_logging

# Setup structured logging
setup_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the due-job check in the background; stop pollers on shutdown"""
    provider = app.dependency_overrides.get(get_desk_context, get_desk_context)
    ctx = provider()
    ctx.session.startup()
    yield
    await ctx.session.close()
    await ctx.board.reset()
    ctx.board.dispose()
    ctx.executor.dispose()


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Bourso Desk",
        description="Session, transfer and DCA orchestration over a brokerage account",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    app.include_router(session.router, prefix="/v1", tags=["session"])
    app.include_router(accounts.router, prefix="/v1", tags=["accounts"])
    app.include_router(transfers.router, prefix="/v1", tags=["transfers"])
    app.include_router(jobs.router, prefix="/v1", tags=["jobs"])
    app.include_router(performance.router, prefix="/v1", tags=["performance"])

    return app


app = create_app()
