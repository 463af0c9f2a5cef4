"""TaskForge FastAPI application: lifespan, error mapping and router wiring."""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

import asyncio

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from taskforge import config
from taskforge.errors import AppError, format_error_response
from taskforge.routers.dashboard import dashboard_router, notifications_router
from taskforge.routers.projects import projects_router
from taskforge.routers.tasks import tasks_router

from taskforge.db import connection, migrations
from taskforge.services.reconcile import run_reconcile_loop
from taskforge.observability import initialize as initialize_observability, shutdown as shutdown_observability

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("taskforge")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup / shutdown lifecycle."""
    logger.info("TaskForge backend starting up")
    initialize_observability(app)

    # 1. Open both stores
    document_db = await connection.get_document_connection()
    analytics_db = await connection.get_analytics_connection()

    # 2. Run migrations
    await migrations.run_migrations(document_db, analytics_db)

    # 3. Periodic drift reconciliation (background task)
    if config.RECONCILE_ENABLED:
        logger.info(
            "Starting reconciliation loop (every %ss)",
            config.RECONCILE_INTERVAL_SECONDS,
        )
        app.state.reconcile_task = asyncio.create_task(
            run_reconcile_loop(document_db, analytics_db, config.RECONCILE_INTERVAL_SECONDS)
        )

    yield

    logger.info("TaskForge backend shutting down")

    reconcile_task = getattr(app.state, "reconcile_task", None)
    if reconcile_task is not None:
        reconcile_task.cancel()
        try:
            await reconcile_task
        except asyncio.CancelledError:
            pass

    shutdown_observability(app)
    await connection.close_connections()


app = FastAPI(
    title="TaskForge API",
    description="Project and task management backend with a derived analytics store",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        config.FRONTEND_ORIGIN,
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content=format_error_response(exc))


# Register routers
app.include_router(projects_router)
app.include_router(tasks_router)
app.include_router(dashboard_router)
app.include_router(notifications_router)


@app.get("/api/health")
def health():
    """Health check endpoint."""
    stores = connection.is_connected()
    return {
        "status": "ok" if all(stores.values()) else "degraded",
        "documentStore": "connected" if stores["document"] else "disconnected",
        "analyticsStore": "connected" if stores["analytics"] else "disconnected",
        "reconcile": "enabled" if config.RECONCILE_ENABLED else "disabled",
    }
