from enum import StrEnum

TRANSPORT_ERROR_STATUS = 0


class TransportErrorText(StrEnum):
    """Synthetic status texts for responses that never arrived."""

    TIMEOUT = "Timeout"
    CONNECTION = "Connection Error"
    GENERIC = "Error"


class ServerEvent(StrEnum):
    """Collaboration messages broadcast to editors."""

    USER_JOINED = "user-joined"
    USER_LEFT = "user-left"
    REQUEST_UPDATED = "request-updated"
    CURSOR_MOVED = "cursor-moved"
    ERROR = "error"
