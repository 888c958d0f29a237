"""Domain error types for portal collection and document retrieval.

The set is closed on purpose: components translate Playwright, httpx, and
pymongo failures into one of these at their boundary so callers only ever
handle collector errors.

Fatal errors end the process (see :func:`is_fatal`). Everything else is
entity-scoped and handled by the retry combinator or counted as a failure.
"""

from __future__ import annotations

from enum import Enum


class CollectorError(Exception):
    """Base class for all collector errors."""


class LaunchError(CollectorError):
    """The browser automation engine could not start."""


class LoginFailureReason(Enum):
    """Why a login attempt failed."""

    CREDENTIALS_MISSING = "credentials_missing"
    TIMEOUT = "timeout"
    UNEXPECTED_REDIRECT = "unexpected_redirect"


class LoginError(CollectorError):
    """Login did not reach the post-login page."""

    def __init__(self, message: str, reason: LoginFailureReason) -> None:
        super().__init__(message)
        self.reason = reason


class NavigationTimeout(CollectorError):
    """A click or page transition did not complete in time."""


class StructuralElementMissing(CollectorError):
    """An expected table, row, link, or control is not on the page."""


class ValidationFailed(CollectorError):
    """A fetched document failed the size or signature check."""


class PersistenceError(CollectorError):
    """The document store is unreachable or rejected an operation."""


def is_fatal(error: BaseException) -> bool:
    """Return ``True`` for errors that must abort the whole run."""
    return isinstance(error, LaunchError | LoginError | PersistenceError)
