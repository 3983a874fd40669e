"""crmrecords client exceptions."""

from typing import Any


class CrmError(Exception):
    """Base exception for crmrecords errors."""

    def __init__(self, message: str, code: str | None = None):
        super().__init__(message)
        self.message = message
        self.code = code


class TransportError(CrmError):
    """Network or session level failure not attributable to a record."""

    pass


class AuthenticationError(TransportError):
    """The token endpoint rejected the session request."""

    pass


class ValidationError(CrmError):
    """Request arguments were rejected before anything was sent."""

    pass


class RequestError(CrmError):
    """The remote store answered with a fault for the whole request."""

    def __init__(
        self,
        message: str,
        code: str | None = None,
        errors: list[Any] | None = None,
    ):
        super().__init__(message, code)
        self.errors = errors or []


class NotFoundError(RequestError):
    """A referenced record identifier does not exist."""

    def __init__(self, message: str, errors: list[Any] | None = None):
        super().__init__(message, "NOT_FOUND", errors)


class MultipleChoicesError(CrmError):
    """An upsert matched more than one record on the external identifier.

    Attributes:
        content: Resource locators of the conflicting records, in the order
            the remote store listed them.
        results: For batch upserts, the outcome of every position of the
            batch. Conflicting positions hold their own MultipleChoicesError.
    """

    def __init__(
        self,
        message: str,
        content: list[str],
        results: list[Any] | None = None,
    ):
        super().__init__(message, "MULTIPLE_CHOICES")
        self.content = content
        self.results = results
