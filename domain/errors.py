"""Exceptions raised by the chat engine"""


class ChatError(Exception):
    """Base class for chat engine errors"""


class InvalidFrameError(ChatError):
    """A socket frame could not be decoded into an event name and arguments"""


class InvalidEventError(ChatError):
    """A known event arrived without one of its required fields"""

    def __init__(self, event: str, field: str) -> None:
        super().__init__(f"'{event}' is missing required field '{field}'")
        self.event = event
        self.field = field
