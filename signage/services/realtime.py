import asyncio
import logging
from collections import defaultdict
from typing import Any

logger = logging.getLogger(__name__)


class LiveSyncBus:
    """Per-player change notifications.

    Each player id gets its own channel the first time somebody subscribes
    to it. Publishing sends the bare channel name (``<prefix>:<player_id>``)
    to every live subscriber of that player and nothing else; displays are
    expected to refetch their manifest when they see it.
    """

    def __init__(self, event_prefix: str = "mediaUpdate") -> None:
        self._prefix = event_prefix
        self._channels: dict[str, set[Any]] = defaultdict(set)
        self._lock = asyncio.Lock()

    def channel_name(self, player_id: str) -> str:
        return f"{self._prefix}:{player_id}"

    async def subscribe(self, player_id: str, client: Any) -> None:
        async with self._lock:
            self._channels[player_id].add(client)

    async def unsubscribe(self, player_id: str, client: Any) -> None:
        async with self._lock:
            subscribers = self._channels.get(player_id)
            if subscribers is not None:
                subscribers.discard(client)

    def subscriber_count(self, player_id: str) -> int:
        return len(self._channels.get(player_id, ()))

    async def publish(self, player_id: str) -> int:
        message = self.channel_name(player_id)
        async with self._lock:
            clients = list(self._channels.get(player_id, ()))

        delivered = 0
        stale: list[Any] = []
        for client in clients:
            try:
                await client.send_text(message)
                delivered += 1
            except Exception:
                logger.debug("Dropping subscriber of %s after failed send", message, exc_info=True)
                stale.append(client)

        if stale:
            async with self._lock:
                for client in stale:
                    self._channels[player_id].discard(client)
        return delivered
