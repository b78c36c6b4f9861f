"""Premium feature access log.

A bounded, most-recent-first list per user at ``premium-access-log:{user_id}``
used to spot shared or abused premium accounts. Logging is best effort and
never blocks the request it describes.
"""

import json
import time
from typing import Any, Callable, Dict, List, Optional

from resumegate.core.exceptions import CollaboratorUnavailableError
from resumegate.core.limits import CounterStore, CounterStoreError
from resumegate.core.logging import get_logger

logger = get_logger(__name__)


def access_log_key(user_id: str) -> str:
    return f"premium-access-log:{user_id}"


class PremiumAccessLog:
    def __init__(
        self,
        store: CounterStore,
        *,
        max_entries: int = 100,
        ttl_seconds: int = 30 * 24 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._max_entries = max_entries
        self._ttl = ttl_seconds
        self._clock = clock

    async def record(
        self,
        user_id: str,
        feature: str,
        *,
        ip: Optional[str] = None,
        user_agent: Optional[str] = None,
        path: Optional[str] = None,
        method: Optional[str] = None,
    ) -> bool:
        """Append an access entry. Returns False if the store rejected it."""
        entry = {
            "feature": feature,
            "timestamp": int(self._clock() * 1000),
            "ip": ip,
            "user_agent": user_agent,
            "path": path,
            "method": method,
        }
        key = access_log_key(user_id)
        try:
            await self._store.push_front(key, json.dumps(entry))
            await self._store.trim_list(key, 0, self._max_entries - 1)
            await self._store.expire(key, self._ttl)
        except CounterStoreError as exc:
            logger.warning(
                "Premium access log write failed",
                data={"user_id": user_id, "feature": feature, "error": str(exc)},
            )
            return False
        return True

    async def recent(self, user_id: str, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        stop = (limit - 1) if limit else -1
        try:
            raw = await self._store.read_list(access_log_key(user_id), 0, stop)
        except CounterStoreError as exc:
            logger.error("Premium access log read failed", data={"user_id": user_id, "error": str(exc)})
            raise CollaboratorUnavailableError(collaborator="counter_store") from exc
        return [json.loads(item) for item in raw]
