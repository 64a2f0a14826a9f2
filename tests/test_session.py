"""Tests for the per-connection session state machine."""
import pytest

from errors import DuplicateNameError, MessageTooLongError, UserNotFoundError, ValidationError
from session import SessionState
from tests.conftest import drain, events_of, roster_names


@pytest.fixture
def alice(connect):
    connection, session = connect("conn-a")
    session.join({"name": "Alice", "room": "X"})
    return connection, session


@pytest.fixture
def bob(connect, alice):
    connection, session = connect("conn-b")
    session.join({"name": "bob", "room": "x"})
    return connection, session


def test_first_join_welcomes_and_sends_roster(connect):
    connection, session = connect("conn-a")
    binding = session.join({"name": "Alice", "room": "X"})

    assert binding.name == "alice" and binding.room == "x"
    assert session.state is SessionState.JOINED
    frames = drain(connection)
    assert events_of(frames) == ["message", "roomData"]
    assert frames[0]["data"]["user"] == "admin"
    assert frames[0]["data"]["text"] == "alice, welcome to the room x"
    assert frames[0]["data"]["timestamp"].endswith("Z")
    assert frames[1]["data"]["room"] == "x"
    assert frames[1]["data"]["users"] == [{"id": "conn-a", "name": "alice", "room": "x"}]


def test_second_join_announces_to_others_only(alice, connect):
    connection_a, _ = alice
    drain(connection_a)
    connection_b, session_b = connect("conn-b")
    session_b.join({"name": "bob", "room": "x"})

    frames_a = drain(connection_a)
    assert events_of(frames_a) == ["message", "roomData"]
    assert frames_a[0]["data"]["user"] == "admin"
    assert frames_a[0]["data"]["text"] == "bob has joined"
    assert roster_names(frames_a[1]) == ["alice", "bob"]

    frames_b = drain(connection_b)
    assert events_of(frames_b) == ["message", "roomData"]
    assert frames_b[0]["data"]["text"] == "bob, welcome to the room x"
    assert roster_names(frames_b[1]) == ["alice", "bob"]


def test_message_reaches_whole_room_with_roster(alice, bob):
    (connection_a, _), (connection_b, session_b) = alice, bob
    drain(connection_a)
    drain(connection_b)

    session_b.send_message("  hi  ")

    for connection in (connection_a, connection_b):
        frames = drain(connection)
        assert events_of(frames) == ["message", "roomData"]
        assert frames[0]["data"]["user"] == "bob"
        assert frames[0]["data"]["text"] == "hi"
        assert roster_names(frames[1]) == ["alice", "bob"]


def test_roster_refresh_after_message_can_be_disabled(connect):
    connection, session = connect("conn-a", roster_refresh_on_message=False)
    session.join({"name": "alice", "room": "x"})
    drain(connection)
    session.send_message("hi")
    assert events_of(drain(connection)) == ["message"]


def test_disconnect_announces_departure_and_frees_name(alice, bob, connect, registry):
    (connection_a, session_a), (connection_b, _) = alice, bob
    drain(connection_b)

    departed = session_a.close("transport close")

    assert departed.name == "alice"
    assert session_a.state is SessionState.CLOSED
    frames_b = drain(connection_b)
    assert events_of(frames_b) == ["message", "roomData"]
    assert frames_b[0]["data"]["user"] == "admin"
    assert frames_b[0]["data"]["text"] == "alice has left."
    assert roster_names(frames_b[1]) == ["bob"]

    _, session_c = connect("conn-c")
    assert session_c.join({"name": "alice", "room": "x"}).connection_id == "conn-c"
    assert [m.name for m in registry.list_room("x")] == ["bob", "alice"]


def test_duplicate_name_fails_without_binding(alice, bob, connect, registry):
    connection_a, _ = alice
    drain(connection_a)
    connection_c, session_c = connect("conn-c")

    with pytest.raises(DuplicateNameError):
        session_c.join({"name": "BOB", "room": "x"})

    assert session_c.state is SessionState.UNJOINED
    assert registry.get_binding("conn-c") is None
    assert drain(connection_c) == []
    assert drain(connection_a) == []


@pytest.mark.parametrize("payload,message", [
    (None, "Name and room are required"),
    ("alice", "Name and room are required"),
    ({"name": "alice"}, "Name and room are required"),
    ({"name": "", "room": "x"}, "Name and room are required"),
    ({"name": "  ", "room": "x"}, "Name and room are required"),
    ({"name": 42, "room": "x"}, "Name and room must be strings"),
    ({"name": "alice", "room": ["x"]}, "Name and room must be strings"),
])
def test_join_validation(connect, payload, message):
    connection, session = connect()
    with pytest.raises(ValidationError) as exc_info:
        session.join(payload)
    assert exc_info.value.message == message
    assert session.state is SessionState.UNJOINED
    assert drain(connection) == []


def test_rejoin_while_joined_is_rejected(alice, registry):
    _, session = alice
    with pytest.raises(ValidationError) as exc_info:
        session.join({"name": "alice", "room": "y"})
    assert exc_info.value.message == "Already joined a room"
    assert session.room == "x"
    assert registry.rooms() == {"x": 1}


def test_message_length_boundary(alice):
    connection, session = alice
    drain(connection)

    accepted = session.send_message("a" * 5000)
    assert len(accepted.text) == 5000

    with pytest.raises(MessageTooLongError) as exc_info:
        session.send_message("a" * 5001)
    assert exc_info.value.message == "Message is too long (max 5000 characters)"
    assert events_of(drain(connection)) == ["message", "roomData"]


@pytest.mark.parametrize("text", [None, "", "   ", 12, {"text": "hi"}])
def test_invalid_message_format(alice, text):
    _, session = alice
    with pytest.raises(ValidationError) as exc_info:
        session.send_message(text)
    assert exc_info.value.message == "Invalid message format"


def test_message_before_join_is_user_not_found(connect):
    connection, session = connect()
    with pytest.raises(UserNotFoundError):
        session.send_message("hi")
    assert drain(connection) == []


def test_message_after_close_is_user_not_found(alice, bob):
    (connection_a, session_a), (connection_b, _) = alice, bob
    session_a.close("gone")
    drain(connection_b)

    with pytest.raises(UserNotFoundError):
        session_a.send_message("still here?")
    with pytest.raises(UserNotFoundError):
        session_a.join({"name": "alice", "room": "x"})
    assert drain(connection_b) == []


def test_message_racing_with_removed_binding(alice, registry):
    _, session = alice
    # Binding removed underneath the session, e.g. by a concurrent close
    registry.remove_binding(session.connection_id)
    with pytest.raises(UserNotFoundError):
        session.send_message("hi")


def test_typing_goes_to_others_only(alice, bob):
    (connection_a, _), (connection_b, session_b) = alice, bob
    drain(connection_a)
    drain(connection_b)

    session_b.typing({"isTyping": True})
    session_b.typing({"isTyping": 0})

    frames_a = drain(connection_a)
    assert [frame["data"] for frame in frames_a] == [
        {"user": "bob", "isTyping": True},
        {"user": "bob", "isTyping": False},
    ]
    assert events_of(frames_a) == ["userTyping", "userTyping"]
    assert drain(connection_b) == []


def test_typing_is_silently_ignored_when_invalid(alice, connect):
    connection_a, _ = alice
    drain(connection_a)
    _, unjoined = connect()

    unjoined.typing({"isTyping": True})
    alice[1].typing("typing")
    alice[1].typing(None)
    assert drain(connection_a) == []


def test_close_is_idempotent(alice, bob):
    (_, session_a), (connection_b, _) = alice, bob
    drain(connection_b)

    assert session_a.close("first") is not None
    assert session_a.close("second") is None
    assert events_of(drain(connection_b)) == ["message", "roomData"]


def test_close_before_join(connect, registry):
    _, session = connect()
    assert session.close("bye") is None
    assert session.state is SessionState.CLOSED
    assert len(registry) == 0


def test_last_member_leaving_removes_room(alice, registry):
    _, session = alice
    session.close("bye")
    assert registry.rooms() == {}


def test_handle_maps_errors_to_acknowledgements(alice, connect):
    _, session = connect()
    assert session.handle("sendMessage", "hi") == "User not found"
    assert session.handle("join", {"name": "alice", "room": "x"}) == "Username is already taken"
    assert session.handle("join", {"room": "x"}) == "Name and room are required"
    assert session.handle("join", {"name": "carol", "room": "x"}) is None
    assert session.handle("sendMessage", "x" * 5001) == "Message is too long (max 5000 characters)"
    assert session.handle("sendMessage", "hello") is None
    assert session.handle("typing", "nonsense") is None
    assert session.handle("shout", "hello") == "Unknown event"


def test_handle_reports_generic_failure_on_unexpected_error(connect, registry, monkeypatch):
    _, session = connect()

    def broken(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(registry, "add_binding", broken)
    assert session.handle("join", {"name": "alice", "room": "x"}) == "An error occurred while joining the room"
    assert session.state is SessionState.UNJOINED


def test_failed_delivery_does_not_fail_message(alice, bob, broadcaster):
    (connection_a, _), (connection_b, session_b) = alice, bob
    drain(connection_b)
    connection_a.close()

    message = session_b.send_message("anyone?")

    assert message.text == "anyone?"
    assert events_of(drain(connection_b)) == ["message", "roomData"]
