"""
Brainwriting — FastAPI application entry-point.

Run with:
    uvicorn brainwriting.main:app --reload
"""

import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from brainwriting import models  # noqa: F401  (registers tables on Base.metadata)
from brainwriting.config import settings
from brainwriting.database import Base, async_session, engine
from brainwriting.exceptions import CoordinatorError
from brainwriting.routers import boards, sheets
from brainwriting.services.coordinator import BoardCoordinator

logger = logging.getLogger(__name__)


def create_app(coordinator: Optional[BoardCoordinator] = None, create_tables: bool = True) -> FastAPI:
    """Build the app; tests pass their own coordinator bound to a scratch database."""

    # ── Lifespan: create tables, wire the coordinator, start the sweep timer ──
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if create_tables:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        app.state.coordinator = coordinator or BoardCoordinator(async_session)

        sweep_task = None
        if settings.SWEEP_INTERVAL_SECONDS > 0:
            sweep_task = asyncio.create_task(
                app.state.coordinator.sweeper.run_forever(settings.SWEEP_INTERVAL_SECONDS)
            )
        yield
        if sweep_task is not None:
            sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweep_task

    app = FastAPI(
        title=settings.APP_NAME,
        description="Turn-based shared sheets for team brainwriting.",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts=("*",))

    # ── Typed coordinator failures → JSON errors ──
    @app.exception_handler(CoordinatorError)
    async def coordinator_error_handler(request: Request, exc: CoordinatorError):
        if exc.status_code >= 500:
            logger.warning(f"{request.method} {request.url.path} failed: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.code, "detail": exc.message},
        )

    # ── Register API routers ──
    app.include_router(boards.router)
    app.include_router(sheets.router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


if settings.DEBUG:
    logging.basicConfig(level=logging.DEBUG)

app = create_app()
