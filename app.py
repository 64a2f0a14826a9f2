import asyncio
import json
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError as FrameValidationError

import middleware
from broadcaster import Broadcaster
from connections import Connection
from constants import CORS_ORIGINS, LOG_FILE, LOG_LEVEL
from errors import ConnectionClosedError, OutboxFullError
from logging_config import get_logger, setup_logging
from registry import Registry
from routers.health import health_router
from routers.rooms import rooms_router
from schemas.events import ClientFrame
from session import SessionLifecycle

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)

PUMP_DRAIN_TIMEOUT = 5.0


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Chat server started: WebSocket endpoint ready at /ws")
    yield
    connections = app.state.broadcaster.connections()
    logger.info(f"Shutting down, closing {len(connections)} connection(s)")
    for connection in connections:
        connection.close()


def create_app(registry: Optional[Registry] = None, broadcaster: Optional[Broadcaster] = None) -> FastAPI:
    app = FastAPI(title="Room Chat", lifespan=lifespan)
    app.state.registry = registry or Registry()
    app.state.broadcaster = broadcaster or Broadcaster()
    app.state.started_at = datetime.now()

    # Configure CORS for the configured origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )
    middleware.install(app)

    app.include_router(health_router)
    app.include_router(rooms_router)
    app.add_api_websocket_route("/ws", websocket_endpoint)

    logger.info("FastAPI application initialized")
    return app


def parse_frame(data: str, connection_id: str) -> Optional[ClientFrame]:
    try:
        return ClientFrame.model_validate(json.loads(data))
    except json.JSONDecodeError:
        logger.warning(f"Dropping non-JSON frame from connection {connection_id}")
    except FrameValidationError as e:
        logger.warning(f"Dropping malformed frame from connection {connection_id}: {e.error_count()} error(s)")
    return None


async def websocket_endpoint(websocket: WebSocket):
    """WebSocket endpoint speaking the room chat event protocol.

    Client frames: {"event": "join" | "sendMessage" | "typing", "data": ..., "ack": optional id}
    Server frames: {"event": "message" | "roomData" | "userTyping", "data": ...}
    and {"event": "ack", "ack": id, "error": str | null} for frames that carried an ack id.
    """
    registry: Registry = websocket.app.state.registry
    broadcaster: Broadcaster = websocket.app.state.broadcaster

    await websocket.accept()
    connection = Connection()
    connection_id = connection.connection_id
    broadcaster.register(connection)
    session = SessionLifecycle(connection_id, registry, broadcaster)
    pump_task = asyncio.create_task(connection.pump(websocket))
    logger.info(f"New client connected: {connection_id}")

    reason = "server closed connection"
    message_count = 0
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
            message_count += 1
            logger.debug(f"Received frame #{message_count} from connection {connection_id}")

            data = message.get("text")
            if data is None:
                logger.warning(f"Dropping binary frame from connection {connection_id}")
                continue
            frame = parse_frame(data, connection_id)
            if frame is None:
                continue

            error = session.handle(frame.event, frame.data)
            if frame.ack is not None:
                try:
                    connection.send_ack(frame.ack, error)
                except (ConnectionClosedError, OutboxFullError) as e:
                    logger.warning(f"Could not acknowledge '{frame.event}' on connection {connection_id}: {e}")
    except WebSocketDisconnect as e:
        reason = f"client disconnect (code {e.code})"
    except Exception as e:
        reason = f"transport error: {e}"
        logger.error(f"WebSocket error for connection {connection_id}: {e}", exc_info=True)
    finally:
        session.close(reason)
        broadcaster.unregister(connection_id)
        connection.close()
        try:
            await asyncio.wait_for(pump_task, timeout=PUMP_DRAIN_TIMEOUT)
        except asyncio.TimeoutError:
            logger.warning(f"Outbound pump of connection {connection_id} did not drain in time")
        logger.info(f"Client disconnected: {connection_id}, reason: {reason}")


app = create_app()
