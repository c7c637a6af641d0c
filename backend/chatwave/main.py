"""ChatWave Backend Application.

This is the main entry point for the ChatWave backend service, a real-time
multi-room chat server.

Modules:
    - chat: WebSocket transport, presence registry, broadcast fabric and the
      connection lifecycle coordinator
    - rooms: REST endpoints for the room catalog and presence stats
    - storage: DuckDB-backed message store and room directory
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from chatwave.chat.router import router as chat_router
from chatwave.config import get_config
from chatwave.rooms.router import router as rooms_router
from chatwave.services import get_coordinator, get_dispatcher, reset_services
from chatwave.storage.database import ChatDatabase

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# Silence per-request access logs; chat traffic is logged by the handlers.
for _noisy in (
    "uvicorn.access",
    "httpx",
    "httpcore",
):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    # Apply configured log level to root logger so that
    # `logging.level: "debug"` in chatwave.settings.yaml activates DEBUG output.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    # Open storage, seed rooms/welcome messages, start persistence workers.
    get_coordinator()
    get_dispatcher().start()
    logger.info(
        f"ChatWave ready on http://{config.server.host}:{config.server.port} "
        f"(db={config.storage.db_path})"
    )

    yield  # Application runs here

    # Shutdown: flush queued messages before closing storage
    reset_services()
    ChatDatabase.reset_instance()
    logger.info("Application shutdown complete")


# Create FastAPI application with metadata
app = FastAPI(
    title="ChatWave API",
    description="Real-time multi-room chat backend",
    version="0.1.0",
    lifespan=lifespan,
)

# Register all routers
app.include_router(chat_router)
app.include_router(rooms_router)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object indicating the server is running.
    """
    return {"status": "ok"}


def run() -> None:
    """Run the server with uvicorn using the configured host and port."""
    import uvicorn

    config = get_config()
    uvicorn.run(app, host=config.server.host, port=config.server.port)


if __name__ == "__main__":
    run()
