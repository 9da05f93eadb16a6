"""
Agenda Intel FastAPI application.

Lifespan creates the store schema; the engines themselves hold no state.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from agenda_intel.api.v1.tasks import router as tasks_router
from agenda_intel.config import get_settings
from agenda_intel.db.tasks_repo import ensure_tables

# Ensure agenda_intel loggers show INFO in uvicorn output
_log = logging.getLogger("agenda_intel")
_log.setLevel(logging.INFO)
if not _log.handlers:
    _h = logging.StreamHandler()
    _h.setLevel(logging.INFO)
    _h.setFormatter(logging.Formatter("%(levelname)s:     %(name)s - %(message)s"))
    _log.addHandler(_h)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Init resources at startup; cleanup on shutdown."""
    ensure_tables()
    yield


app = FastAPI(
    title="Agenda Intel API",
    description="Task scheduling intelligence: calendar risk, priority, predictions, recommendations",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Ensure error responses include proper JSON and CORS headers."""
    _log.exception("Unhandled error on %s %s", request.method, request.url.path)
    origin = request.headers.get("origin", "*")
    return JSONResponse(
        status_code=500,
        content={"detail": str(exc), "type": type(exc).__name__},
        headers={
            "Access-Control-Allow-Origin": origin,
            "Access-Control-Allow-Methods": "GET, POST, PUT, PATCH, DELETE, OPTIONS",
            "Access-Control-Allow-Headers": "*",
        },
    )


settings = get_settings()
if settings.cors_allow_all:
    origins: list[str] = ["*"]
    credentials = False
else:
    origins = list(settings.cors_origins_list)
    credentials = True

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(tasks_router, prefix="/api/v1/tasks", tags=["tasks"])


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "service": "agenda-intel"}
