from typing import Any, Dict, Iterable, Optional

from connections import Connection
from errors import ConnectionClosedError, OutboxFullError
from logging_config import get_logger
from registry import Binding

logger = get_logger(__name__)


class Broadcaster:
    """Delivers events to the outbound channels of bound connections.

    The member list is always supplied by the caller, taken inside the same
    registry transaction as the mutation being announced. Delivery is best effort:
    a missing, closed or saturated channel is logged and skipped.
    """

    def __init__(self):
        # connection_id -> Connection
        self._connections: Dict[str, Connection] = {}

    def register(self, connection: Connection):
        self._connections[connection.connection_id] = connection
        logger.debug(f"Registered outbound channel {connection.connection_id} (total: {len(self._connections)})")

    def unregister(self, connection_id: str) -> Optional[Connection]:
        connection = self._connections.pop(connection_id, None)
        if connection is not None:
            logger.debug(f"Unregistered outbound channel {connection_id} (total: {len(self._connections)})")
        return connection

    def get(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def connections(self):
        return list(self._connections.values())

    def __len__(self) -> int:
        return len(self._connections)

    def send(self, connection_id: str, event: str, data: Any = None) -> bool:
        connection = self._connections.get(connection_id)
        if connection is None:
            logger.warning(f"No outbound channel for connection {connection_id}, dropping '{event}'")
            return False
        try:
            connection.send(event, data)
            return True
        except (ConnectionClosedError, OutboxFullError) as e:
            logger.warning(f"Could not deliver '{event}' to connection {connection_id}: {e}")
        except Exception as e:
            logger.error(f"Unexpected error delivering '{event}' to connection {connection_id}: {e}", exc_info=True)
        return False

    def broadcast(self, members: Iterable[Binding], event: str, data: Any = None, exclude: Optional[str] = None) -> int:
        """Deliver ``event`` to every member except ``exclude``; returns the number delivered."""
        delivered = 0
        for member in members:
            if exclude is not None and member.connection_id == exclude:
                continue
            if self.send(member.connection_id, event, data):
                delivered += 1
        logger.debug(f"Broadcast '{event}' delivered to {delivered} connection(s)")
        return delivered
