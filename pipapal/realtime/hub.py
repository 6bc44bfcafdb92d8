"""
In-memory notification relay.

Sockets are registered under the authenticated user id; server code pushes
JSON envelopes to a user and every socket that user has open receives it.
Nothing is persisted: a message for a user with no open socket is dropped,
and a socket that fails on send is forgotten.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Dict, Iterable, Optional, Set

logger = logging.getLogger(__name__)

SYSTEM_EVENT = "_system"

COLLECTION_UPDATE = "collection_update"
NEW_COLLECTION = "new_collection"
NEW_MESSAGE = "new_message"
MATERIAL_INTEREST = "material_interest"
MATERIAL_BID = "material_bid"
PAYMENT_UPDATE = "payment_update"


class NotificationHub:
    """Registry of open sockets keyed by user id."""

    def __init__(self) -> None:
        self._sockets: Dict[int, Set[Any]] = defaultdict(set)

    def register(self, user_id: int, websocket: Any) -> None:
        self._sockets[user_id].add(websocket)
        logger.info("User %s connected to relay (%d socket(s))", user_id, len(self._sockets[user_id]))

    def unregister(self, user_id: int, websocket: Any) -> None:
        sockets = self._sockets.get(user_id)
        if not sockets:
            return
        sockets.discard(websocket)
        if not sockets:
            del self._sockets[user_id]
        logger.info("User %s disconnected from relay", user_id)

    def is_connected(self, user_id: int) -> bool:
        return bool(self._sockets.get(user_id))

    def connected_users(self) -> Set[int]:
        return set(self._sockets)

    def clear(self) -> None:
        self._sockets.clear()

    async def send_to_user(self, user_id: int, message: Dict[str, Any]) -> int:
        """Push `message` to every socket of `user_id`; returns how many got it."""
        sockets = list(self._sockets.get(user_id, ()))
        if not sockets:
            logger.debug("Dropping %s for offline user %s", message.get("type"), user_id)
            return 0

        delivered = 0
        for ws in sockets:
            try:
                await ws.send_json(message)
                delivered += 1
            except Exception:
                logger.warning("Send to user %s failed; dropping socket", user_id, exc_info=True)
                self.unregister(user_id, ws)
        return delivered

    async def send_to_users(self, user_ids: Iterable[int], message: Dict[str, Any]) -> int:
        delivered = 0
        for user_id in set(user_ids):
            delivered += await self.send_to_user(user_id, message)
        return delivered


def connection_status(status: str) -> Dict[str, Any]:
    return {"type": SYSTEM_EVENT, "event": "connection_status", "status": status}


def collection_event(event_type: str, collection: Any, message: str, **extra: Any) -> Dict[str, Any]:
    payload = {
        "type": event_type,
        "collectionId": collection.id,
        "status": collection.status,
        "wasteType": collection.waste_type,
        "message": message,
    }
    payload.update(extra)
    return payload


def event(event_type: str, message: Optional[str] = None, **extra: Any) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"type": event_type}
    if message is not None:
        payload["message"] = message
    payload.update(extra)
    return payload


hub = NotificationHub()
