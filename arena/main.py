from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from arena.core.config import settings
from arena.core.db import TRANSIENT_DB_ERRORS, engine, get_session
from arena.core.errors import BattleError
from arena.services.realtime import RealtimeNotifier
from arena.services.scheduler import BattleScheduler
from arena.utils.exception_handlers import (
    battle_error_handler,
    general_exception_handler,
    http_exception_handler,
    store_unavailable_handler,
    validation_exception_handler,
)
from arena.utils.router_discovery import register_routers


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, FastAPI]:
    scheduler = BattleScheduler(
        get_session, app.state.notifier, interval=settings.scheduler_interval_seconds
    )
    if settings.scheduler_enabled:
        scheduler.start()

    yield

    await scheduler.stop()
    await engine.dispose()


app = FastAPI(
    title="Card Battle Arena API",
    lifespan=app_lifespan,
    servers=[{"url": "http://localhost:3011", "description": "Local server"}],
)
app.state.notifier = RealtimeNotifier()


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


register_routers(app)

app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(BattleError, battle_error_handler)
for error_type in TRANSIENT_DB_ERRORS:
    app.add_exception_handler(error_type, store_unavailable_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)


@app.get("/")
async def healthz() -> str:
    return "OK"
