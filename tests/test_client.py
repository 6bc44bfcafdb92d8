import asyncio
import json

from pipapal.realtime.client import ConnectionState, NotificationClient


class FakeConnection:
    def __init__(self, frames):
        self.frames = list(frames)
        self.sent = []
        self.closed = False

    async def send(self, data):
        self.sent.append(json.loads(data))

    async def close(self):
        self.closed = True

    def __aiter__(self):
        return self._frames()

    async def _frames(self):
        for frame in self.frames:
            yield frame


def frame(**data):
    return json.dumps(data)


CONNECTED = frame(type="_system", event="connection_status", status="connected")


def test_system_messages_only_change_state():
    client = NotificationClient("ws://relay/ws", user_id=1, token="t")

    assert client.handle_message(CONNECTED) is None
    assert client.state is ConnectionState.CONNECTED
    assert client.notifications == []

    client.handle_message(frame(type="_system", event="connection_status", status="unauthorized"))
    assert client.state is ConnectionState.DISCONNECTED


def test_notifications_are_newest_first_and_unread():
    client = NotificationClient("ws://relay/ws", user_id=1, token="t")

    client.handle_message(frame(type="new_collection", message="first"))
    client.handle_message(frame(type="collection_update", message="second"))

    assert [n.message for n in client.notifications] == ["second", "first"]
    assert client.unread_count == 2

    client.mark_read(client.notifications[0].id)
    assert client.unread_count == 1
    client.mark_all_read()
    assert client.unread_count == 0
    client.clear()
    assert client.notifications == []


def test_bad_frames_are_ignored():
    client = NotificationClient("ws://relay/ws", user_id=1, token="t")
    assert client.handle_message("not json") is None
    assert client.handle_message(json.dumps({"message": "no type"})) is None
    assert client.notifications == []


def test_run_authenticates_and_reconnects_after_failures():
    states = []
    received = []
    attempts = []
    live = FakeConnection([CONNECTED, frame(type="new_message", message="hello")])

    async def main():
        client = NotificationClient(
            "ws://relay/ws",
            user_id=5,
            token="abc",
            reconnect_delay=0,
            connect=None,
            on_notification=received.append,
            on_state_change=states.append,
        )

        async def connect(url):
            attempts.append(url)
            if len(attempts) == 2:
                return live
            if len(attempts) >= 3:
                await client.stop()
            raise OSError("connection refused")

        client._connect = connect
        await client.run()
        return client

    client = asyncio.run(main())

    assert len(attempts) == 3
    assert live.sent == [{"type": "auth", "userId": 5, "token": "abc"}]
    assert [n.message for n in received] == ["hello"]
    assert states == [
        ConnectionState.CONNECTING,
        ConnectionState.DISCONNECTED,
        ConnectionState.CONNECTING,
        ConnectionState.CONNECTED,
        ConnectionState.DISCONNECTED,
        ConnectionState.CONNECTING,
        ConnectionState.DISCONNECTED,
    ]
    assert client.state is ConnectionState.DISCONNECTED
