"""
Exceptions and the shared error slot for the map state core.

Nothing here is raised across the public session API: loaders catch these,
record them in an ErrorState and return an empty result instead.
"""


class ChronomapError(Exception):
    """Base class for chronomap errors."""


class TransportError(ChronomapError):
    """Network, HTTP or decoding failure while talking to the map API."""

    def __init__(self, message: str, status_code: int | None = None, url: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.url = url


class RequestCancelled(ChronomapError):
    """Raised to the awaiter of a request that was superseded or cancelled."""

    def __init__(self, kind: str):
        super().__init__(f"{kind} request cancelled")
        self.kind = kind


class ErrorState:
    """The single error field shared by every loader in a session."""

    def __init__(self):
        self.error: Exception | None = None

    def set(self, error: Exception | None) -> None:
        self.error = error

    def clear(self) -> None:
        self.error = None

    @property
    def has_error(self) -> bool:
        return self.error is not None
