from __future__ import annotations

from typing import Optional


class AuthError(RuntimeError):
    """Base class for Twitch authentication failures."""


class AuthMissingCredentials(AuthError):
    """clientId (or clientSecret for refresh) is not configured."""


class AuthNeedsRefresh(AuthError):
    """The access token was rejected; a refresh may recover it."""


class AuthNeedsNewTokens(AuthError):
    """Refresh is impossible or was rejected; the OAuth flow must run."""


class AuthRetryable(AuthError):
    """A network failure; the same request may succeed later."""


class TokenRefreshError(AuthError):
    """
    The token endpoint rejected a refresh-token grant.

    `code` is "invalid_grant" when the refresh token itself is dead,
    otherwise "http_error" (or "network_error" from the client).
    """

    def __init__(
        self,
        message: str,
        *,
        code: str = "http_error",
        status: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status = status


__all__ = [
    "AuthError",
    "AuthMissingCredentials",
    "AuthNeedsRefresh",
    "AuthNeedsNewTokens",
    "AuthRetryable",
    "TokenRefreshError",
]
