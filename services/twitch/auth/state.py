from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from services.twitch.auth.errors import (
    AuthError,
    AuthMissingCredentials,
    AuthNeedsNewTokens,
    AuthNeedsRefresh,
    AuthRetryable,
)

PLACEHOLDER_PREFIX = "test_token_"


class AuthState(str, Enum):
    UNINITIALIZED = "UNINITIALIZED"
    REFRESHING = "REFRESHING"
    AWAITING_OAUTH = "AWAITING_OAUTH"
    READY = "READY"
    FAILED = "FAILED"


def is_placeholder_token(token: Any) -> bool:
    return isinstance(token, str) and token.lower().startswith(PLACEHOLDER_PREFIX)


@dataclass
class TokenVerdict:
    """Outcome of checking an access token against the validate endpoint."""

    is_valid: bool = False
    needs_new_tokens: bool = False
    needs_refresh: bool = False
    missing_client_credentials: bool = False
    retryable: bool = False
    errors: List[str] = field(default_factory=list)
    scopes: List[str] = field(default_factory=list)
    expires_in: Optional[int] = None
    user_id: Optional[str] = None
    login: Optional[str] = None

    def as_error(self) -> Optional[AuthError]:
        """The error a caller should surface for this verdict, if any."""
        if self.is_valid:
            return None
        message = "; ".join(self.errors) or "Token validation failed"
        if self.missing_client_credentials:
            return AuthMissingCredentials(message)
        if self.retryable:
            return AuthRetryable(message)
        if self.needs_refresh:
            return AuthNeedsRefresh(message)
        return AuthNeedsNewTokens(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "needsNewTokens": self.needs_new_tokens,
            "needsRefresh": self.needs_refresh,
            "missingClientCredentials": self.missing_client_credentials,
            "retryable": self.retryable,
            "errors": list(self.errors),
            "scopes": list(self.scopes),
            "expiresIn": self.expires_in,
            "userId": self.user_id,
            "login": self.login,
        }


__all__ = [
    "PLACEHOLDER_PREFIX",
    "AuthState",
    "is_placeholder_token",
    "TokenVerdict",
]
