from __future__ import annotations

import time
from typing import Dict, Optional

from shared.logging.logger import get_logger

log = get_logger("services.users")


class UserTrackingService:
    """
    Remembers which users have spoken this session.

    `is_first_message` is a check-and-record: the first call for a user
    returns True, every later call returns False until `reset()`.
    """

    def __init__(self) -> None:
        self._seen: Dict[str, float] = {}

    @staticmethod
    def _key(user_id: Optional[str], username: Optional[str], platform: Optional[str]) -> Optional[str]:
        identity = user_id or (username.lower() if isinstance(username, str) else None)
        if not identity:
            return None
        return f"{platform or 'unknown'}:{identity}"

    def is_first_message(
        self,
        user_id: Optional[str],
        *,
        username: Optional[str] = None,
        platform: Optional[str] = None,
    ) -> bool:
        key = self._key(user_id, username, platform)
        if key is None:
            log.debug("[users] first-message check without identity; treating as not first")
            return False

        if key in self._seen:
            return False

        self._seen[key] = time.time()
        log.debug(f"[users] first message from {key}")
        return True

    def reset(self) -> None:
        self._seen.clear()
        log.info("[users] first-message tracking reset")


__all__ = ["UserTrackingService"]
