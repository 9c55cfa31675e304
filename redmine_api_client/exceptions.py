"""
Custom exception types for the Redmine API client.

Configuration and validation errors are raised synchronously, before
any network activity.  The remaining types describe the outcome of a
request and are delivered through the completion callback (and the
returned future) rather than raised out of :meth:`Redmine.request`.
"""

from typing import Optional


class RedmineError(Exception):
    """Base exception for all Redmine client errors."""


class ConfigurationError(RedmineError, ValueError):
    """Raised when the client is constructed with an invalid host, credentials or format."""


class ValidationError(RedmineError, ValueError):
    """Raised when a caller-supplied argument is rejected before a request is sent."""


class ApiError(RedmineError):
    """The Redmine server answered with a status other than 200 or 201."""

    def __init__(self, status_code: int, status_message: str) -> None:
        self.status_code = status_code
        self.status_message = status_message
        super().__init__(f"Server returns : {status_message} ({status_code})")


class TransportError(RedmineError):
    """The connection failed before or while the response was received.

    The underlying ``requests`` exception is available as ``__cause__``.
    """


class MalformedResponseError(RedmineError):
    """A success response carried a body that could not be decoded."""

    def __init__(self, message: str, body: Optional[str] = None) -> None:
        self.body = body
        super().__init__(message)
