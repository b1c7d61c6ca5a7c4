from dataclasses import dataclass, field
from typing import Any, Dict, Optional


@dataclass
class YouTubeLivestream:
    """
    Lightweight metadata carrier for an active YouTube livestream.
    """

    video_id: str
    live_chat_id: str
    channel_id: Optional[str] = None
    title: Optional[str] = None
    started_at: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    def status_event(self, status: str) -> Dict[str, Any]:
        return {
            "platform": "youtube",
            "type": "stream-status",
            "data": {
                "status": status,
                "videoId": self.video_id,
                "title": self.title,
                "startedAt": self.started_at,
            },
        }
