"""Error taxonomy of the chat core.

Every ChatError carries the text that is acknowledged back to the originating
connection. These errors are never broadcast to a room.
"""


class ChatError(Exception):
    default_message = "An error occurred"

    def __init__(self, message: str = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ChatError):
    default_message = "Invalid input"


class MessageTooLongError(ValidationError):
    default_message = "Message is too long"


class DuplicateNameError(ChatError):
    default_message = "Username is already taken"


class UserNotFoundError(ChatError):
    default_message = "User not found"


class InternalError(ChatError):
    default_message = "Internal error"


class ConnectionClosedError(Exception):
    """Raised when an event is handed to a connection that has already closed."""


class OutboxFullError(Exception):
    """Raised when a connection's outbound queue is full."""
