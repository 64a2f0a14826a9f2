import asyncio
import uuid
from typing import Any, Optional

from constants import OUTBOX_MAX_SIZE
from errors import ConnectionClosedError, OutboxFullError
from logging_config import get_logger
from schemas.events import ACK

logger = get_logger(__name__)

_CLOSE = object()


class Connection:
    """Outbound channel of one WebSocket connection.

    Events are queued with ``send`` and written to the socket by ``pump``, which
    the transport runs as a background task. Queuing never waits on the peer.
    The queue belongs to the loop the connection was created on; callers on any
    other thread or loop hand their frames over with ``call_soon_threadsafe``.
    """

    def __init__(self, connection_id: Optional[str] = None, max_queue: int = OUTBOX_MAX_SIZE):
        self.connection_id = connection_id or uuid.uuid4().hex
        self.outbox: asyncio.Queue = asyncio.Queue(maxsize=max_queue)
        self.closed = False
        try:
            self._loop: Optional[asyncio.AbstractEventLoop] = asyncio.get_running_loop()
        except RuntimeError:
            # created outside a loop; only ever fed from the creating thread
            self._loop = None

    def send(self, event: str, data: Any = None):
        self._put({"event": event, "data": data})

    def send_ack(self, ack_id, error: Optional[str] = None):
        self._put({"event": ACK, "ack": ack_id, "error": error})

    def _on_own_loop(self) -> bool:
        if self._loop is None:
            return True
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False

    def _put(self, frame: dict):
        if self.closed:
            raise ConnectionClosedError(f"Connection {self.connection_id} is closed")
        if self._on_own_loop():
            try:
                self.outbox.put_nowait(frame)
            except asyncio.QueueFull:
                raise OutboxFullError(f"Outbox of connection {self.connection_id} is full")
            return

        if self.outbox.full():
            raise OutboxFullError(f"Outbox of connection {self.connection_id} is full")
        try:
            self._loop.call_soon_threadsafe(self._deliver, frame)
        except RuntimeError:
            raise ConnectionClosedError(f"Event loop of connection {self.connection_id} is closed")

    def _deliver(self, frame: dict):
        # Runs on the connection's own loop, ahead of any close sentinel scheduled after it
        try:
            self.outbox.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning(f"Outbox of connection {self.connection_id} is full, dropping '{frame['event']}'")

    def close(self):
        if self.closed:
            return
        self.closed = True
        if self._on_own_loop():
            self._enqueue_close()
            return
        try:
            self._loop.call_soon_threadsafe(self._enqueue_close)
        except RuntimeError:
            logger.debug(f"Event loop of connection {self.connection_id} already closed")

    def _enqueue_close(self):
        try:
            self.outbox.put_nowait(_CLOSE)
        except asyncio.QueueFull:
            # pump is behind; drop one pending frame to make room for the sentinel
            self.outbox.get_nowait()
            self.outbox.put_nowait(_CLOSE)

    async def pump(self, websocket):
        """Write queued frames to the websocket until the connection closes."""
        sent = 0
        try:
            while True:
                frame = await self.outbox.get()
                if frame is _CLOSE:
                    break
                await websocket.send_json(frame)
                sent += 1
        except asyncio.CancelledError:
            logger.debug(f"Outbound pump cancelled for connection {self.connection_id}")
            raise
        except Exception as e:
            logger.warning(f"Stopped writing to connection {self.connection_id}: {e}")
            self.closed = True
        finally:
            logger.debug(f"Outbound pump for connection {self.connection_id} finished after {sent} frames")
