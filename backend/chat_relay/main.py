"""Chat Relay Application.

This is the main entry point for the chat relay service. Clients connect
over a WebSocket, register under a key, send messages to named rooms and
fetch a room's stored history.

Modules:
    - chat: sessions, room registry, event routing and the WebSocket endpoint
    - store: ordered per-room message history (Redis or in-memory)
    - config: YAML settings with environment overrides
"""
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from chat_relay.chat.events import EventRouter
from chat_relay.chat.registry import RoomRegistry
from chat_relay.chat.router import router as chat_router
from chat_relay.chat.session import SessionManager
from chat_relay.config import get_config
from chat_relay.store import create_store

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# uvicorn.access logs every static file and health probe; redis logs
# connection churn. Neither helps when debugging relay behaviour.
for _noisy in (
    "uvicorn.access",
    "redis",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    store = create_store(config.store, config.secrets)
    if not await store.ping():
        logger.warning(
            "Message store (%s) is not reachable yet; messages will be "
            "rejected until it is", config.store.backend
        )

    registry = RoomRegistry()
    sessions = SessionManager(
        registry,
        queue_size=config.relay.outbound_queue_size,
        send_timeout=config.relay.send_timeout_seconds,
    )
    app.state.store = store
    app.state.registry = registry
    app.state.sessions = sessions
    app.state.events = EventRouter(store, registry)
    logger.info(
        "Relay ready on %s:%s (store=%s)",
        config.server.host, config.server.port, config.store.backend,
    )

    yield  # Application runs here

    # Shutdown
    await sessions.shutdown()
    await store.close()
    logger.info("Application shutdown complete")


def create_app() -> FastAPI:
    """Build the FastAPI application with CORS and static files."""
    config = get_config()

    application = FastAPI(
        title="Chat Relay",
        description="Room-based real-time chat relay",
        version="0.1.0",
        lifespan=lifespan,
    )

    if config.server.allowed_origins:
        application.add_middleware(
            CORSMiddleware,
            allow_origins=config.server.allowed_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            allow_headers=["Content-Type", "Authorization"],
        )

    application.include_router(chat_router)

    @application.get("/health")
    async def health(request: Request) -> dict:
        """Health check endpoint.

        Returns:
            dict: Server status, store reachability and live session count.
        """
        state = request.app.state
        store_ok = await state.store.ping()
        return {
            "status": "ok",
            "store": "ok" if store_ok else "unavailable",
            "sessions": state.sessions.active_count(),
        }

    # Mounted last so it never shadows the API routes.
    static_dir = Path(config.server.static_dir)
    if static_dir.is_dir():
        application.mount("/", StaticFiles(directory=static_dir, html=True), name="static")
        logger.info("Serving static files from %s", static_dir)

    return application


app = create_app()


def run() -> None:
    """Console entry point: serve the app with uvicorn."""
    import uvicorn

    config = get_config()
    uvicorn.run(app, host=config.server.host, port=config.server.port)
