"""FastAPI application entry point."""

import logging
import os
import time
from collections import defaultdict

import structlog
import uvicorn
from fastapi import FastAPI, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from muzgpt import __version__
from muzgpt.api import auth, billing
from muzgpt.api.routes import router
from muzgpt.api.websocket import handle_browser_websocket
from muzgpt.config import get_settings

# Simple in-memory rate limiter for WebSocket
_ws_connection_times: dict[str, list[float]] = defaultdict(list)
_WS_RATE_LIMIT = 10  # max WS connections per IP per window
_WS_RATE_WINDOW = 60  # seconds


def allow_ws_connection(client_ip: str, now: float) -> bool:
    """Record a connection attempt. Returns False once the IP is over its quota.

    IPs with no attempt inside the window are forgotten.
    """
    for ip in list(_ws_connection_times):
        recent = [t for t in _ws_connection_times[ip] if now - t < _WS_RATE_WINDOW]
        if recent:
            _ws_connection_times[ip] = recent
        else:
            del _ws_connection_times[ip]
    times = _ws_connection_times[client_ip]
    if len(times) >= _WS_RATE_LIMIT:
        return False
    times.append(now)
    return True


# Configure structlog based on environment
is_production = os.getenv("ENV", "development").lower() == "production"

if is_production:
    # Production: JSON format for machine parsing
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.INFO),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
else:
    # Development: console format for human readability
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.DEBUG),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

settings = get_settings()

app = FastAPI(title="MUZGPT", version=__version__)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.include_router(router)
app.include_router(auth.router)
app.include_router(billing.router)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    """Browser WebSocket endpoint with per-IP rate limiting."""
    client_ip = websocket.client.host if websocket.client else "unknown"
    if not allow_ws_connection(client_ip, time.time()):
        await websocket.close(code=1008, reason="Rate limit exceeded")
        return
    await handle_browser_websocket(websocket, settings)


# Mount frontend static files (must be after API routes)
if settings.frontend_dir.is_dir():
    app.mount("/", StaticFiles(directory=str(settings.frontend_dir), html=True), name="frontend")


def main() -> None:
    """Run the application."""
    uvicorn.run(
        "muzgpt.main:app",
        host=settings.host,
        port=settings.port,
        reload=False,
        log_level="info",
    )


if __name__ == "__main__":
    main()
