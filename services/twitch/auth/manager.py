"""
Twitch authentication state machine.

UNINITIALIZED -> REFRESHING -> READY
                            -> AWAITING_OAUTH -> READY | FAILED
UNINITIALIZED -> AWAITING_OAUTH   (no tokens, or placeholder tokens)
UNINITIALIZED -> FAILED           (no clientId; OAuth never runs)
any           -> UNINITIALIZED    (update_config / cleanup)

A refresh is always attempted before the interactive OAuth flow. Failures
are recorded in `last_error` and reflected in the state; initialize() does
not raise for them.
"""

from __future__ import annotations

import asyncio
import inspect
import time
from abc import ABC, abstractmethod
from copy import deepcopy
from typing import Any, Callable, Dict, Mapping, Optional

import httpx

from services.twitch.auth.client import DEFAULT_TOKEN_URL, DEFAULT_VALIDATE_URL, TwitchTokenClient
from services.twitch.auth.errors import (
    AuthError,
    AuthMissingCredentials,
    AuthNeedsNewTokens,
    AuthRetryable,
    TokenRefreshError,
)
from services.twitch.auth.state import AuthState, TokenVerdict, is_placeholder_token
from shared.logging.logger import get_logger

log = get_logger("twitch.auth")

REFRESH_THRESHOLD_SECONDS = 300


class OAuthHandler(ABC):
    """Interactive authorization flow used when refresh is impossible."""

    @abstractmethod
    async def run(self, config: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Return {"access_token", "refresh_token"} or None when the user aborts."""
        raise NotImplementedError


class TwitchAuthManager:
    def __init__(
        self,
        config: Mapping[str, Any],
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        oauth_handler: Optional[OAuthHandler] = None,
        on_tokens_updated: Optional[Callable[[Dict[str, Any]], Any]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._config: Dict[str, Any] = deepcopy(dict(config or {}))
        self._http_client = http_client
        self._oauth_handler = oauth_handler
        self._on_tokens_updated = on_tokens_updated
        self._clock = clock

        self._state = AuthState.UNINITIALIZED
        self._last_error: Optional[Exception] = None
        self._verdict: Optional[TokenVerdict] = None
        self._expires_at: Optional[float] = None
        self._refresh_lock = asyncio.Lock()
        self._client = self._build_client()

    def _build_client(self) -> TwitchTokenClient:
        return TwitchTokenClient(
            http_client=self._http_client,
            validate_url=self._config.get("validateUrl") or DEFAULT_VALIDATE_URL,
            token_url=self._config.get("tokenUrl") or DEFAULT_TOKEN_URL,
            timeout=float(self._config.get("requestTimeoutMs") or 10000) / 1000,
        )

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    def get_state(self) -> AuthState:
        return self._state

    def get_last_error(self) -> Optional[Exception]:
        return self._last_error

    def get_config(self) -> Dict[str, Any]:
        return deepcopy(self._config)

    def get_access_token(self) -> str:
        if self._state is not AuthState.READY:
            raise AuthError("Authentication not initialized. Call initialize() first.")
        return self._config["accessToken"]

    def get_status(self) -> Dict[str, Any]:
        verdict = self._verdict
        return {
            "state": self._state.value,
            "hasAccessToken": bool(self._config.get("accessToken")),
            "hasRefreshToken": bool(self._config.get("refreshToken")),
            "userId": verdict.user_id if verdict else None,
            "login": verdict.login if verdict else None,
            "scopes": list(verdict.scopes) if verdict else [],
            "expiresAt": self._expires_at,
            "lastError": str(self._last_error) if self._last_error else None,
        }

    def _set_state(self, state: AuthState) -> None:
        if state is not self._state:
            log.debug(f"[twitch] auth state {self._state.value} -> {state.value}")
        self._state = state

    def _fail(self, error: Exception, state: AuthState = AuthState.FAILED) -> AuthState:
        self._last_error = error
        self._set_state(state)
        log.error(f"[twitch] authentication {state.value.lower()}: {error}")
        return self._state

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    async def validate_tokens(self, config: Optional[Mapping[str, Any]] = None) -> TokenVerdict:
        cfg = dict(config) if config is not None else self._config
        verdict = TokenVerdict()

        if not cfg.get("clientId"):
            verdict.errors.append("Missing clientId")
            verdict.needs_new_tokens = True
            verdict.missing_client_credentials = True
            return verdict

        access_token = cfg.get("accessToken")
        if not access_token or not cfg.get("refreshToken"):
            verdict.errors.append("Missing accessToken or refreshToken")
            verdict.needs_new_tokens = True
            return verdict

        if is_placeholder_token(access_token):
            verdict.errors.append("Placeholder accessToken detected; real OAuth token required")
            verdict.needs_new_tokens = True
            return verdict

        try:
            response = await self._client.validate(access_token)
        except AuthRetryable as e:
            verdict.errors.append(str(e))
            verdict.retryable = True
            return verdict

        status = response.status_code
        if status == 401:
            verdict.errors.append("Access token expired or invalid")
            verdict.needs_refresh = True
            verdict.needs_new_tokens = True
            return verdict
        if status >= 500:
            verdict.errors.append(f"Token validation failed: {status}")
            verdict.retryable = True
            return verdict
        if status != 200:
            verdict.errors.append(f"Token validation failed: {status}")
            verdict.needs_new_tokens = True
            return verdict

        try:
            body = response.json()
        except ValueError:
            body = {}

        scopes = list(body.get("scopes") or [])
        missing = [s for s in cfg.get("scopes") or [] if s not in scopes]
        verdict.scopes = scopes
        verdict.expires_in = body.get("expires_in")
        verdict.user_id = body.get("user_id")
        verdict.login = body.get("login")

        if missing:
            verdict.errors.extend(f"Missing required OAuth scope: {s}" for s in missing)
            verdict.needs_new_tokens = True
            return verdict

        verdict.is_valid = True
        return verdict

    # ------------------------------------------------------------------
    # Token updates
    # ------------------------------------------------------------------

    async def _apply_tokens(self, access_token: str, refresh_token: Optional[str], expires_in: Any) -> None:
        self._config["accessToken"] = access_token
        if refresh_token:
            self._config["refreshToken"] = refresh_token
        self._expires_at = (
            self._clock() + float(expires_in)
            if isinstance(expires_in, (int, float)) and not isinstance(expires_in, bool)
            else None
        )

        if self._on_tokens_updated is None:
            return
        try:
            result = self._on_tokens_updated(
                {
                    "accessToken": self._config["accessToken"],
                    "refreshToken": self._config.get("refreshToken"),
                    "expiresAt": self._expires_at,
                }
            )
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            log.warning(f"[twitch] token persistence callback failed: {e}")

    async def refresh_tokens(self) -> bool:
        """Run the refresh-token grant. Failures land in last_error."""
        async with self._refresh_lock:
            client_id = self._config.get("clientId")
            refresh_token = self._config.get("refreshToken")

            if not client_id:
                self._last_error = AuthMissingCredentials("Missing clientId; cannot refresh")
                return False
            if not refresh_token or is_placeholder_token(refresh_token):
                self._last_error = TokenRefreshError("No refresh token available", code="missing_refresh_token")
                return False

            log.info("[twitch] refreshing access token")
            try:
                body = await self._client.refresh(
                    client_id=client_id,
                    client_secret=self._config.get("clientSecret"),
                    refresh_token=refresh_token,
                )
            except (TokenRefreshError, AuthRetryable) as e:
                self._last_error = e
                log.warning(f"[twitch] token refresh failed: {e}")
                return False

            await self._apply_tokens(body["access_token"], body.get("refresh_token"), body.get("expires_in"))
            self._last_error = None
            log.info("[twitch] access token refreshed")
            return True

    async def _run_oauth(self) -> AuthState:
        self._set_state(AuthState.AWAITING_OAUTH)

        if not self._config.get("clientId"):
            return self._fail(AuthMissingCredentials("Missing clientId; OAuth flow cannot run"))
        if self._oauth_handler is None:
            return self._fail(AuthNeedsNewTokens("OAuth flow required but no handler is configured"))

        log.info("[twitch] starting OAuth flow")
        try:
            tokens = await self._oauth_handler.run(deepcopy(self._config))
        except asyncio.CancelledError:
            raise
        except Exception as e:
            return self._fail(AuthNeedsNewTokens(f"OAuth flow failed: {e}"))

        if not isinstance(tokens, dict) or not tokens.get("access_token"):
            return self._fail(AuthNeedsNewTokens("OAuth flow returned no tokens"))

        await self._apply_tokens(tokens["access_token"], tokens.get("refresh_token"), tokens.get("expires_in"))
        self._last_error = None
        self._set_state(AuthState.READY)
        log.info("[twitch] OAuth flow complete")
        return self._state

    async def _recover(self) -> AuthState:
        """Refresh first; fall back to OAuth only when the refresh token is dead."""
        self._set_state(AuthState.REFRESHING)
        if await self.refresh_tokens():
            self._set_state(AuthState.READY)
            return self._state

        error = self._last_error
        if isinstance(error, AuthRetryable):
            return self._fail(error, AuthState.UNINITIALIZED)
        if isinstance(error, AuthMissingCredentials):
            return self._fail(error)
        if isinstance(error, TokenRefreshError) and error.code not in ("invalid_grant", "missing_refresh_token"):
            return self._fail(error)
        return await self._run_oauth()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> AuthState:
        if self._state is AuthState.READY:
            return self._state

        self._last_error = None

        if not self._config.get("clientId"):
            return self._fail(AuthMissingCredentials("Missing clientId"))

        access_token = self._config.get("accessToken")
        refresh_token = self._config.get("refreshToken")
        if (
            not access_token
            or not refresh_token
            or is_placeholder_token(access_token)
            or is_placeholder_token(refresh_token)
        ):
            log.info("[twitch] no usable tokens; OAuth flow required")
            return await self._run_oauth()

        self._set_state(AuthState.REFRESHING)
        verdict = await self.validate_tokens()
        self._verdict = verdict

        if verdict.is_valid:
            if verdict.expires_in is not None:
                self._expires_at = self._clock() + float(verdict.expires_in)
            self._set_state(AuthState.READY)
            log.info(f"[twitch] token valid for {verdict.login or verdict.user_id or 'unknown user'}")
            return self._state

        if verdict.retryable:
            return self._fail(verdict.as_error(), AuthState.UNINITIALIZED)

        if verdict.needs_refresh:
            return await self._recover()

        # Scope problems cannot be fixed by a refresh.
        return await self._run_oauth()

    async def ensure_valid_token(self, force_refresh: bool = False) -> bool:
        if self._state is not AuthState.READY:
            return await self.initialize() is AuthState.READY

        expiring = (
            self._expires_at is not None
            and self._expires_at - self._clock() <= REFRESH_THRESHOLD_SECONDS
        )
        if not force_refresh and not expiring:
            return True

        return await self._recover() is AuthState.READY

    def update_config(self, config: Mapping[str, Any]) -> None:
        self._config = deepcopy(dict(config or {}))
        self._state = AuthState.UNINITIALIZED
        self._last_error = None
        self._verdict = None
        self._expires_at = None
        self._client.validate_url = self._config.get("validateUrl") or DEFAULT_VALIDATE_URL
        self._client.token_url = self._config.get("tokenUrl") or DEFAULT_TOKEN_URL
        log.debug("[twitch] auth configuration updated; state reset")

    async def cleanup(self) -> None:
        try:
            await self._client.aclose()
        except Exception as e:
            log.warning(f"[twitch] auth client close failed: {e}")
        self._state = AuthState.UNINITIALIZED
        self._last_error = None
        self._verdict = None
        self._expires_at = None


__all__ = [
    "REFRESH_THRESHOLD_SECONDS",
    "OAuthHandler",
    "TwitchAuthManager",
]
