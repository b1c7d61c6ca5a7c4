from __future__ import annotations

import asyncio
from typing import Any, Dict, Optional

import httpx

from services.twitch.auth.errors import AuthRetryable, TokenRefreshError
from shared.logging.logger import get_logger

log = get_logger("twitch.auth.client")

DEFAULT_VALIDATE_URL = "https://id.twitch.tv/oauth2/validate"
DEFAULT_TOKEN_URL = "https://id.twitch.tv/oauth2/token"


def _json(response: httpx.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def classify_refresh_failure(status: int, body: Dict[str, Any]) -> str:
    """Map a failed refresh response to an error code."""
    error = str(body.get("error") or "")
    message = str(body.get("message") or body.get("error_description") or "")
    if status in (400, 401) and (
        error == "invalid_grant"
        or "invalid_grant" in message
        or "Invalid refresh token" in message
    ):
        return "invalid_grant"
    return "http_error"


class TwitchTokenClient:
    """
    HTTP calls against the Twitch OAuth endpoints.

    - validate(): GET validateUrl with the access token
    - refresh(): POST tokenUrl with a refresh_token grant

    Transport failures raise AuthRetryable. Rejected refreshes raise
    TokenRefreshError carrying the classified code and HTTP status.
    """

    def __init__(
        self,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        validate_url: str = DEFAULT_VALIDATE_URL,
        token_url: str = DEFAULT_TOKEN_URL,
        timeout: float = 10.0,
    ):
        self.validate_url = validate_url
        self.token_url = token_url
        self.timeout = timeout
        self._client = http_client
        self._owns_client = http_client is None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def validate(self, access_token: str) -> httpx.Response:
        try:
            return await self._http().get(
                self.validate_url,
                headers={"Authorization": f"OAuth {access_token}"},
            )
        except asyncio.CancelledError:
            raise
        except httpx.HTTPError as e:
            log.warning(f"[twitch] token validation network error: {e}")
            raise AuthRetryable(f"Token validation failed: network error ({e})") from e

    async def refresh(
        self,
        *,
        client_id: str,
        client_secret: Optional[str],
        refresh_token: str,
    ) -> Dict[str, Any]:
        form = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": client_id,
        }
        if client_secret:
            form["client_secret"] = client_secret

        try:
            response = await self._http().post(self.token_url, data=form)
        except asyncio.CancelledError:
            raise
        except httpx.HTTPError as e:
            log.warning(f"[twitch] token refresh network error: {e}")
            raise AuthRetryable(f"Token refresh failed due to network error ({e})") from e

        body = _json(response)
        if response.status_code != 200:
            code = classify_refresh_failure(response.status_code, body)
            detail = body.get("message") or body.get("error") or response.reason_phrase
            raise TokenRefreshError(
                f"Token refresh failed: {response.status_code} {detail}",
                code=code,
                status=response.status_code,
            )

        if not body.get("access_token"):
            raise TokenRefreshError(
                "Token refresh response has no access_token",
                code="invalid_response",
                status=response.status_code,
            )
        return body

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


__all__ = [
    "DEFAULT_VALIDATE_URL",
    "DEFAULT_TOKEN_URL",
    "classify_refresh_failure",
    "TwitchTokenClient",
]
