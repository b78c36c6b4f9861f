"""Read-through cache of user snapshots in the counter store.

Keys are ``user:{user_id}`` holding the snapshot as JSON. Callers that mutate
a user (subscription changes, durable usage increments, profile updates) call
``invalidate`` right after the write commits. The cache only saves database
reads: if the store is down, reads go straight to the user store.
"""

import json
from typing import Optional

from resumegate.core.limits import CounterStore, CounterStoreError
from resumegate.core.logging import get_logger
from resumegate.db.users import UserStore
from resumegate.services.entitlements import UserSnapshot

logger = get_logger(__name__)

DEFAULT_TTL_SECONDS = 1800


def cache_key(user_id: str) -> str:
    return f"user:{user_id}"


class PermissionCache:
    def __init__(
        self,
        store: CounterStore,
        users: UserStore,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
    ):
        self._store = store
        self._users = users
        self._ttl = ttl_seconds

    async def get(self, user_id: str) -> Optional[UserSnapshot]:
        key = cache_key(user_id)
        try:
            cached = await self._store.get(key)
        except CounterStoreError as exc:
            logger.warning("Permission cache read failed", data={"user_id": user_id, "error": str(exc)})
            cached = None
        if cached:
            try:
                return UserSnapshot.from_dict(json.loads(cached))
            except (ValueError, KeyError, TypeError):
                logger.warning("Discarding malformed cache entry", data={"user_id": user_id})

        snapshot = self._users.get(user_id)
        if snapshot is None:
            return None
        await self.put(snapshot)
        return snapshot

    async def put(self, snapshot: UserSnapshot) -> None:
        try:
            await self._store.set_with_ttl(
                cache_key(snapshot.id), json.dumps(snapshot.to_dict()), self._ttl
            )
        except CounterStoreError as exc:
            logger.warning("Permission cache write failed", data={"user_id": snapshot.id, "error": str(exc)})

    async def invalidate(self, user_id: str) -> None:
        try:
            await self._store.delete(cache_key(user_id))
        except CounterStoreError as exc:
            logger.error(
                "Permission cache invalidation failed; entry expires on its TTL",
                data={"user_id": user_id, "error": str(exc)},
            )
