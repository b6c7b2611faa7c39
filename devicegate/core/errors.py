"""Error kinds raised by the access-control engine.

``ValidationError`` and ``InvalidState`` are deterministic and must reach the
caller unchanged. ``StoreUnavailable`` is transient; callers may retry it with
backoff, the engine itself never does.
"""


class AccessControlError(Exception):
    """Base class for every error raised by the engine."""

    def __init__(self, message: str, device_id: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.device_id = device_id


class ValidationError(AccessControlError, ValueError):
    """Malformed input: empty device id, unblock message out of bounds."""


class InvalidState(AccessControlError):
    """The record is not in a state that allows the requested transition."""


class NotFound(AccessControlError, LookupError):
    """No device record exists for the given device id."""


class StoreUnavailable(AccessControlError):
    """The device record store could not be read or written."""
