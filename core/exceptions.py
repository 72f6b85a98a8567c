"""Typed exceptions for quote pricing and lifecycle failures.

Callers branch on the class, never on message text. Messages are safe to
show to the person who triggered the operation, including the public
recipient of a shared quote.
"""


class QuoteError(Exception):
    """Base class for quote domain errors."""


class InvalidInputError(QuoteError, ValueError):
    """Malformed or out-of-range input that a pydantic payload did not cover."""


class InvalidAmountError(InvalidInputError):
    """A monetary input could not be read as a finite decimal number."""

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"Invalid amount: {value!r}")


class InvalidShareTokenError(InvalidInputError):
    """Share token failed format checks. Raised before any lookup."""

    def __init__(self):
        super().__init__("Invalid share token")


class NotFoundError(QuoteError):
    """
    Record does not exist or is outside the caller's owner/session scope.

    The two cases are deliberately indistinguishable to the caller.
    """


class IllegalTransitionError(QuoteError):
    """The quote's current status does not permit the requested action."""

    def __init__(self, message: str, action: str | None = None):
        self.action = action
        super().__init__(message)


class QuoteExpiredError(IllegalTransitionError):
    """The quote's valid_until has passed."""

    def __init__(self, message: str = "This quote has expired"):
        super().__init__(message)


class ConflictError(QuoteError):
    """
    A conditional write matched zero rows - another request got there first.

    Expected under concurrency. Callers should not retry automatically.
    """


class UpstreamError(QuoteError):
    """Persistence or payment processor failed for infrastructure reasons."""


class PaymentUnavailableError(UpstreamError):
    """The payment processor rejected the request or could not be reached."""
