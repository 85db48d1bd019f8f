"""
Fountain Booth: FastAPI application entry point.

Starts the Fountain Manager on startup, serves the REST API and the
WebSocket progress endpoint.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from api.routes import init_routes, router
from api.websocket import ConnectionManager
from config import API_HOST, API_PORT, CORS_ORIGINS
from fountain.manager import FountainManager

# --- Logging ---
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# --- Service singletons ---
fountain_manager = FountainManager()
ws_manager = ConnectionManager()
fountain_manager.on_event(ws_manager.handle_event)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start/stop background services."""
    logger.info("Starting Fountain Booth services...")

    try:
        await fountain_manager.start()

        logger.info(f"Fountain Booth ready, API: {API_HOST}:{API_PORT}")

        yield

    except Exception as e:
        logger.error(f"Startup failed: {e}", exc_info=True)
        raise
    finally:
        logger.info("Shutting down Fountain Booth services...")
        await fountain_manager.stop()


# --- FastAPI app ---
app = FastAPI(
    title="Fountain Booth",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Inject services into routes
init_routes(fountain_manager)
app.include_router(router)


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, session_id: str | None = None):
    await ws_manager.connect(websocket, session_id)
    try:
        while True:
            # Keep the connection alive; we don't expect client messages
            await websocket.receive_text()
    except WebSocketDisconnect:
        await ws_manager.disconnect(websocket)
    except Exception:
        await ws_manager.disconnect(websocket)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=API_HOST,
        port=API_PORT,
        log_level="info",
    )
