import time
from datetime import datetime

from fastapi import APIRouter, Request
from fastapi.responses import HTMLResponse

from constants import APP_VERSION, ENVIRONMENT
from schemas.events import utc_timestamp
from schemas.rooms import HealthResponse, StatusResponse

health_router = APIRouter(tags=["health"])


@health_router.get("/", response_class=HTMLResponse)
async def index():
    return "<h1>Server is Running!</h1><p>WebSocket chat endpoint is ready at /ws.</p>"


@health_router.get("/health", response_model=HealthResponse)
async def health(request: Request):
    state = request.app.state
    return HealthResponse(
        status="UP",
        timestamp=utc_timestamp(),
        uptime=(datetime.now() - state.started_at).total_seconds(),
        connections=len(state.broadcaster),
        rooms=len(state.registry.rooms()),
        environment=ENVIRONMENT,
    )


@health_router.get("/api/status", response_model=StatusResponse)
async def status():
    return StatusResponse(server="online", timestamp=int(time.time() * 1000), version=APP_VERSION)
