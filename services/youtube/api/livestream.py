from typing import Any, Dict, Optional

import httpx

from services.youtube.models.stream import YouTubeLivestream
from shared.logging.logger import get_logger

log = get_logger("youtube.livestream")


class YouTubeLivestreamAPI:
    """
    YouTube livestream discovery API (Data API v3).

    Responsibilities:
    - Resolve channel ID from channel ID or @handle
    - Detect active live broadcast for the channel
    - Resolve activeLiveChatId

    Read-only and safe to call repeatedly. Lookup failures are logged
    and reported as "no livestream".
    """

    BASE_URL = "https://www.googleapis.com/youtube/v3"

    def __init__(
        self,
        *,
        api_key: str,
        api_base: Optional[str] = None,
        timeout: float = 15.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if not api_key:
            raise RuntimeError("YouTube API key is required")
        self.api_key = api_key
        self.base_url = (api_base or self.BASE_URL).rstrip("/")
        self.timeout = timeout
        self._client = http_client

    # ------------------------------------------------------------

    async def get_active_livestream(self, *, channel_id: str) -> Optional[YouTubeLivestream]:
        """
        `channel_id` may be a channel ID (UCxxxx) or a handle ("@name").
        """
        resolved_channel_id = await self._resolve_channel_id(channel_id)
        if not resolved_channel_id:
            log.info(f"[youtube] channel not found: {channel_id}")
            return None

        live_video_id = await self._find_live_video_id(resolved_channel_id)
        if not live_video_id:
            log.debug(f"[youtube] no active livestream for channel {resolved_channel_id}")
            return None

        return await self._resolve_livestream_details(live_video_id)

    # ------------------------------------------------------------

    async def _get(self, resource: str, params: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        params = dict(params, key=self.api_key)
        url = f"{self.base_url}/{resource}"

        try:
            if self._client is not None:
                r = await self._client.get(url, params=params)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    r = await client.get(url, params=params)
            r.raise_for_status()
            return r.json()
        except (httpx.HTTPError, ValueError) as e:
            log.warning(f"[youtube] {resource} lookup error: {e}")
            return None

    async def _resolve_channel_id(self, identifier: str) -> Optional[str]:
        params = {"part": "id"}
        if identifier.startswith("@"):
            params["forHandle"] = identifier.lstrip("@")
        else:
            params["id"] = identifier

        data = await self._get("channels", params)
        items = (data or {}).get("items", [])
        if not items:
            return None
        return items[0].get("id")

    async def _find_live_video_id(self, channel_id: str) -> Optional[str]:
        data = await self._get(
            "search",
            {
                "part": "id",
                "channelId": channel_id,
                "eventType": "live",
                "type": "video",
                "maxResults": 1,
            },
        )
        items = (data or {}).get("items", [])
        if not items:
            return None
        return items[0].get("id", {}).get("videoId")

    async def _resolve_livestream_details(self, video_id: str) -> Optional[YouTubeLivestream]:
        data = await self._get("videos", {"part": "snippet,liveStreamingDetails", "id": video_id})
        items = (data or {}).get("items", [])
        if not items:
            return None

        item = items[0]
        snippet = item.get("snippet", {})
        live_details = item.get("liveStreamingDetails", {})

        live_chat_id = live_details.get("activeLiveChatId")
        if not live_chat_id:
            return None

        return YouTubeLivestream(
            video_id=video_id,
            live_chat_id=live_chat_id,
            channel_id=snippet.get("channelId"),
            title=snippet.get("title"),
            started_at=live_details.get("actualStartTime"),
            raw=item,
        )


__all__ = ["YouTubeLivestreamAPI"]
