"""Test configuration and fixtures."""
import asyncio

import pytest

from broadcaster import Broadcaster
from connections import Connection
from registry import Registry
from session import SessionLifecycle


def drain(connection: Connection) -> list:
    """Pop every frame currently queued on a connection."""
    frames = []
    while True:
        try:
            frames.append(connection.outbox.get_nowait())
        except asyncio.QueueEmpty:
            return frames


def events_of(frames: list) -> list:
    return [frame["event"] for frame in frames]


def roster_names(frame: dict) -> list:
    return [user["name"] for user in frame["data"]["users"]]


@pytest.fixture
def registry():
    return Registry()


@pytest.fixture
def broadcaster():
    return Broadcaster()


@pytest.fixture
def connect(registry, broadcaster):
    """Factory creating a registered connection and its session."""
    def _connect(connection_id=None, **session_options):
        connection = Connection(connection_id)
        broadcaster.register(connection)
        session = SessionLifecycle(connection.connection_id, registry, broadcaster, **session_options)
        return connection, session
    return _connect
