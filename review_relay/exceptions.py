"""Exception hierarchy for the review pipeline.

Request-level errors (``AuthenticationError``, ``EventPayloadError``,
``ConfigurationError``) abort the whole webhook request and are mapped to HTTP
responses in ``review_relay.main``.  Commit-level errors (``FetchError``,
``AnalysisError``, ``NotifyError``) are caught by the pipeline at the commit
boundary and recorded in the run result.
"""


class ReviewRelayError(Exception):
    """Base class for all errors raised by the review relay."""


class AuthenticationError(ReviewRelayError):
    """Raised when the inbound webhook token does not match the configured secret."""


class EventPayloadError(ReviewRelayError):
    """Raised when the inbound webhook body cannot be parsed as a push event."""


class ConfigurationError(ReviewRelayError):
    """Raised when required settings are missing or invalid."""


class FetchError(ReviewRelayError):
    """Raised when the commit diff cannot be retrieved from the code host."""


class AnalysisError(ReviewRelayError):
    """Raised when a review engine cannot produce a result."""


class NotifyError(ReviewRelayError):
    """Raised when a chat notification cannot be signed or delivered."""
