"""Application-level exceptions.

These are business-logic errors, not HTTP errors. The presentation layer
(FastAPI routes) translates them into appropriate HTTP responses.
"""


class TurnError(Exception):
    """A turn-level failure that is reported to the caller; nothing was persisted."""


class UpstreamUnavailableError(TurnError):
    """The completion or search capability is unreachable or timed out."""


class PersistenceError(TurnError):
    """Loading or appending conversation messages failed."""


class MalformedUpstreamResponseError(Exception):
    """The model answered with unusable content. Always recovered locally."""


class EmptyMessageError(ValueError):
    """Raised when the caller submits an empty or whitespace-only message."""


class ConversationNotFoundError(LookupError):
    """The conversation does not exist or belongs to another user."""
