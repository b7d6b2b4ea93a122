"""Error taxonomy for the credit card analytics pipeline.

All errors derive from :class:`ValueError` so callers that only guard
against bad input keep working, while pipeline code can catch
:class:`CardAnalyticsError` to separate data problems from bugs.
"""


class CardAnalyticsError(ValueError):
    """Base exception for all card analytics errors."""


class MalformedRecordError(CardAnalyticsError):
    """Raised when a transaction lacks a customer id, timestamp or amount."""


class DuplicateTransactionError(MalformedRecordError):
    """Raised when a transaction id appears more than once in the input."""


class InvalidDateError(CardAnalyticsError):
    """Raised when a customer transacted after the configured as-of date."""


class EmptyInputError(CardAnalyticsError):
    """Raised by loaders asked to reject an input with zero transactions."""


class ConfigurationError(CardAnalyticsError):
    """Raised when score or segment band definitions are invalid."""
