"""
backend/oddsline/main.py

Purpose:
    FastAPI application bootstrap: middleware and router wiring, exception
    mapping, WebSocket manager lifecycle and the scheduler running the
    odds broadcast and bet settlement jobs.

Dependencies:
    - oddsline.database
    - oddsline.services.websocket_manager
    - oddsline.workers.odds_broadcaster
    - oddsline.workers.bet_settler
"""

import logging
from contextlib import asynccontextmanager

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from bson.errors import InvalidId
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import (
    ConnectionFailure,
    DuplicateKeyError,
    OperationFailure,
    ServerSelectionTimeoutError,
)

import oddsline.database as _db
from oddsline.config import settings
from oddsline.database import close_db, connect_db
from oddsline.middleware.logging import StructuredLoggingMiddleware, setup_logging
from oddsline.services.websocket_manager import websocket_manager

logger = logging.getLogger("oddsline")
scheduler = AsyncIOScheduler()

ODDS_BROADCAST_JOB_ID = "odds_broadcast"
SETTLE_BETS_JOB_ID = "settle_bets"


def _register_jobs() -> None:
    from oddsline.workers.bet_settler import settle_bets
    from oddsline.workers.odds_broadcaster import broadcast_odds_changes

    scheduler.add_job(
        settle_bets,
        "interval",
        id=SETTLE_BETS_JOB_ID,
        seconds=settings.SETTLE_BETS_SECONDS,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    if settings.WS_EVENTS_ENABLED:
        scheduler.add_job(
            broadcast_odds_changes,
            "interval",
            id=ODDS_BROADCAST_JOB_ID,
            seconds=settings.ODDS_BROADCAST_SECONDS,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    await connect_db()

    if settings.WS_EVENTS_ENABLED:
        await websocket_manager.start()
        logger.info("Odds broadcast every %ds", settings.ODDS_BROADCAST_SECONDS)
    else:
        logger.info("WebSocket realtime push disabled via config")
    _register_jobs()
    scheduler.start()
    logger.info("Bet settlement every %ds", settings.SETTLE_BETS_SECONDS)

    yield

    if scheduler.running:
        scheduler.shutdown(wait=False)
    if settings.WS_EVENTS_ENABLED:
        await websocket_manager.stop()
    await close_db()


app = FastAPI(
    title="Oddsline",
    description="Fixtures, odds, bet placement and live odds push",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.BACKEND_CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

# Structured logging
app.add_middleware(StructuredLoggingMiddleware)

# Routers
from oddsline.routers.admin import router as admin_router
from oddsline.routers.bets import router as bets_router
from oddsline.routers.fixtures import router as fixtures_router
from oddsline.routers.user import router as user_router
from oddsline.routers.wallet import router as wallet_router
from oddsline.routers.ws import router as ws_router

app.include_router(fixtures_router)
app.include_router(bets_router)
app.include_router(user_router)
app.include_router(wallet_router)
app.include_router(admin_router)
app.include_router(ws_router)


@app.exception_handler(InvalidId)
async def invalid_object_id_handler(request: Request, exc: InvalidId):
    return JSONResponse(status_code=400, content={"detail": "Invalid ID."})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """Return clean validation errors without leaking internal field paths."""
    errors = []
    for err in exc.errors():
        loc = err.get("loc", ())
        # Strip the "body" / "query" prefix for cleaner messages
        field = ".".join(str(part) for part in loc[1:]) if len(loc) > 1 else str(loc[-1]) if loc else "unknown"
        errors.append({"field": field, "message": err.get("msg", "Invalid value.")})
    return JSONResponse(status_code=422, content={"detail": "Validation error.", "errors": errors})


@app.exception_handler(DuplicateKeyError)
async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
    return JSONResponse(status_code=409, content={"detail": "Duplicate entry."})


@app.exception_handler(ServerSelectionTimeoutError)
async def db_timeout_handler(request: Request, exc: ServerSelectionTimeoutError):
    logger.error("Database timeout: %s %s", request.method, request.url.path)
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable."})


@app.exception_handler(ConnectionFailure)
async def db_connection_handler(request: Request, exc: ConnectionFailure):
    logger.error("Database connection failure: %s %s", request.method, request.url.path)
    return JSONResponse(status_code=503, content={"detail": "Service temporarily unavailable."})


@app.exception_handler(OperationFailure)
async def db_operation_handler(request: Request, exc: OperationFailure):
    logger.error("Database operation error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"detail": "An internal error occurred."})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    logger.warning("ValueError on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=400, content={"detail": "Invalid input."})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    """Catch-all: log the real error, return a safe generic message."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "An internal error occurred."})


@app.get("/health")
async def health():
    """Health check -- verifies the DB connection and reports push-channel stats."""
    try:
        result = await _db.db.command("ping")
        db_ok = result.get("ok") == 1.0
    except Exception:
        logger.warning("Health check ping failed", exc_info=True)
        db_ok = False

    ws_stats = websocket_manager.stats()
    return {
        "status": "healthy" if db_ok else "degraded",
        "db": "connected" if db_ok else "disconnected",
        "websocket": {
            "running": ws_stats["running"],
            "active_connections": ws_stats["active_connections"],
            "broadcast_total": ws_stats["broadcast_total"],
        },
    }
