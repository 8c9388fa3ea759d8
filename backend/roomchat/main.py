"""Roomchat Backend Application.

Real-time group chat over WebSockets: clients join seeded rooms, exchange
room and private messages, and see presence, typing, reaction and read
updates.

Modules:
    - chat: Session lifecycle, rooms, presence and message routing
    - monitoring: Counters, health and metrics endpoints
"""
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from roomchat.chat.router import router as chat_router
from roomchat.config import get_config
from roomchat.monitoring.router import router as monitoring_router
from roomchat.monitoring.service import monitoring

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# uvicorn.access logs every request line; the middleware below logs slow ones.
for _noisy in ("uvicorn.access", "httpx", "httpcore"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    # Apply configured log level to root logger so that
    # `logging.level: "debug"` in roomchat.settings.yaml activates DEBUG output.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    logger.info(
        f"Chat server running on http://{config.server.host}:{config.server.port} "
        f"with rooms {[room.id for room in config.chat.rooms]}"
    )

    yield  # Application runs here

    # Shutdown
    logger.info("Application shutdown complete")


# Create FastAPI application with metadata
app = FastAPI(
    title="Roomchat API",
    description="Real-time room chat backend",
    version="0.1.0",
    lifespan=lifespan,
)

_server_settings = get_config().server
app.add_middleware(
    CORSMiddleware,
    allow_origins=_server_settings.allowed_origins,
    allow_origin_regex=_server_settings.allowed_origin_regex,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


@app.middleware("http")
async def track_requests(request: Request, call_next):
    """Count every HTTP request, count >= 400 responses as errors, log slow ones."""
    monitoring.increment_requests()
    start = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        monitoring.increment_errors()
        raise

    duration_ms = (time.perf_counter() - start) * 1000
    if response.status_code >= 400:
        monitoring.increment_errors()
    if duration_ms > get_config().monitoring.slow_request_ms:
        logger.warning(
            "Slow request: %s %s - %.0fms", request.method, request.url.path, duration_ms
        )
    return response


# Register all routers
app.include_router(chat_router)
app.include_router(monitoring_router)


@app.get("/")
async def root() -> dict:
    """Liveness banner.

    Returns:
        dict: Message indicating the server is running.
    """
    return {"message": "Chat server is running"}


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    config = get_config()
    uvicorn.run(
        "roomchat.main:app",
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level.lower(),
    )
