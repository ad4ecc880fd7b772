"""Error taxonomy shared by the engine, the notifier and the HTTP layer.

``NotFoundError``, ``ConflictError`` and ``DomainError`` are business-rule
failures returned to the caller and never retried by the engine.
``TransportError`` only ever reaches the notifier, which logs and drops it.
"""


class EngineError(Exception):
    """Base class for every error raised by the scheduling engine."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class NotFoundError(EngineError):
    """A referenced event, timer or action does not exist."""

    status_code = 404


class ConflictError(EngineError):
    """The operation would break an event-wide invariant."""

    status_code = 409


class DomainError(EngineError):
    """The operation is not valid for the current state."""

    status_code = 400


class TransportError(EngineError):
    """A realtime publish could not be delivered."""

    status_code = 502


class ParseError(ValueError):
    """Malformed instant text."""
