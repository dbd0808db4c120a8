"""Exception hierarchy shared by the client, cache and CLI."""

from __future__ import annotations


class TraktManageError(Exception):
    """Base exception for all trakt-manage errors."""


class AuthError(TraktManageError):
    """The PIN or refresh-token exchange with Trakt failed."""


class TransportError(TraktManageError):
    """A Trakt request failed on the network or returned a non-success status."""

    def __init__(self, message: str, *, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


class MalformedRecordError(TraktManageError, ValueError):
    """A history payload is missing a field required to identify the play."""


class UserCancelled(TraktManageError):
    """The user declined or aborted an interactive prompt."""
