"""
Relay client: keeps a local notification list for one user and reconnects
after a fixed delay whenever the socket closes.

State machine: disconnected -> connecting -> connected -> disconnected.
Messages sent while the client is disconnected are lost.
"""

from __future__ import annotations

import asyncio
import enum
import itertools
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

import websockets
from websockets.exceptions import WebSocketException

from pipapal.config import settings
from pipapal.realtime.hub import SYSTEM_EVENT

logger = logging.getLogger(__name__)

DEFAULT_RECONNECT_DELAY = settings.ws_reconnect_delay


class ConnectionState(str, enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass
class Notification:
    id: int
    type: str
    payload: Dict[str, Any]
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    read: bool = False

    @property
    def message(self) -> Optional[str]:
        return self.payload.get("message")


class NotificationClient:
    """
    Connects to the relay as `user_id`, proven by the API token, and collects
    notifications.

    `connect` is any coroutine function taking the URL and returning an object
    with async `send`, `close` and async iteration over incoming frames; it
    defaults to `websockets.connect`.
    """

    def __init__(
        self,
        url: str,
        user_id: int,
        token: str,
        reconnect_delay: float = DEFAULT_RECONNECT_DELAY,
        connect: Optional[Callable[[str], Awaitable[Any]]] = None,
        on_notification: Optional[Callable[[Notification], None]] = None,
        on_state_change: Optional[Callable[[ConnectionState], None]] = None,
    ) -> None:
        self.url = url
        self.user_id = user_id
        self.token = token
        self.reconnect_delay = reconnect_delay
        self._connect = connect or websockets.connect
        self._on_notification = on_notification
        self._on_state_change = on_state_change

        self.notifications: List[Notification] = []
        self._ids = itertools.count(1)
        self._state = ConnectionState.DISCONNECTED
        self._connection: Any = None
        self._running = False

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def unread_count(self) -> int:
        return sum(1 for n in self.notifications if not n.read)

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        logger.debug("Relay state %s -> %s", self._state.value, state.value)
        self._state = state
        if self._on_state_change:
            self._on_state_change(state)

    async def run(self) -> None:
        """Connect, consume, and reconnect until `stop()` is called."""
        self._running = True
        while self._running:
            await self._session()
            if not self._running:
                break
            logger.info("Relay disconnected; reconnecting in %.1fs", self.reconnect_delay)
            await asyncio.sleep(self.reconnect_delay)

    async def stop(self) -> None:
        self._running = False
        if self._connection is not None:
            await self._connection.close()

    async def reconnect(self) -> None:
        """Drop the current socket; `run()` opens a new one after the delay."""
        if self._connection is not None:
            await self._connection.close()

    async def _session(self) -> None:
        self._set_state(ConnectionState.CONNECTING)
        try:
            connection = await self._connect(self.url)
        except (OSError, WebSocketException) as exc:
            logger.warning("Relay connection failed: %s", exc)
            self._set_state(ConnectionState.DISCONNECTED)
            return

        self._connection = connection
        try:
            await connection.send(json.dumps({"type": "auth", "userId": self.user_id, "token": self.token}))
            async for raw in connection:
                self.handle_message(raw)
        except WebSocketException as exc:
            logger.warning("Relay connection lost: %s", exc)
        finally:
            self._connection = None
            self._set_state(ConnectionState.DISCONNECTED)

    def handle_message(self, raw: Any) -> Optional[Notification]:
        """Apply one incoming frame; returns the notification it produced, if any."""
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            logger.error("Unparseable relay message: %r", raw)
            return None
        if not isinstance(data, dict) or "type" not in data:
            logger.error("Relay message without a type: %r", data)
            return None

        if data["type"] == SYSTEM_EVENT:
            if data.get("event") == "connection_status":
                connected = data.get("status") == "connected"
                self._set_state(ConnectionState.CONNECTED if connected else ConnectionState.DISCONNECTED)
            return None

        notification = Notification(id=next(self._ids), type=data["type"], payload=data)
        self.notifications.insert(0, notification)
        if self._on_notification:
            self._on_notification(notification)
        return notification

    def mark_read(self, notification_id: int) -> None:
        for n in self.notifications:
            if n.id == notification_id:
                n.read = True

    def mark_all_read(self) -> None:
        for n in self.notifications:
            n.read = True

    def clear(self) -> None:
        self.notifications.clear()
