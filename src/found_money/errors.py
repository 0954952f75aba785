"""Exception types shared across sources, scoring, persistence and the API."""


class FoundMoneyError(Exception):
    """Base class for domain errors."""


class UpstreamError(FoundMoneyError):
    """An external service failed. Transient errors may be retried once."""

    def __init__(self, message: str, *, transient: bool, status_code: int | None = None):
        super().__init__(message)
        self.transient = transient
        self.status_code = status_code


class ScoringError(FoundMoneyError):
    """Both the primary and fallback model invocations failed."""


class EmailNotConnectedError(FoundMoneyError):
    """The user has not completed (or has lost) the email authorization grant."""


class JurisdictionNotSupportedError(FoundMoneyError):
    """No property registry is known for the jurisdiction code."""


class RequestValidationError(FoundMoneyError):
    """Input rejected before any external call is made."""


class StatusTransitionError(FoundMoneyError):
    """A record status change would move backwards or is otherwise illegal."""
