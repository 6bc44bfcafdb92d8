import logging
from typing import Any, Optional

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status
from starlette.concurrency import run_in_threadpool

from pipapal.db.models import User
from pipapal.db.session import SessionLocal
from pipapal.realtime.hub import connection_status, hub
from pipapal.services.security import TokenError, token_user_id

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])


def _authenticate(message: Any) -> Optional[int]:
    """Return the user id an auth frame proves, or None."""
    if not isinstance(message, dict) or message.get("type") != "auth":
        return None
    try:
        user_id = int(message.get("userId"))
    except (TypeError, ValueError):
        return None

    token = message.get("token")
    if not isinstance(token, str):
        return None
    try:
        if token_user_id(token) != user_id:
            return None
    except TokenError:
        return None

    with SessionLocal() as db:
        if db.get(User, user_id) is None:
            return None
    return user_id


@router.websocket("/ws")
async def relay_socket(websocket: WebSocket):
    await websocket.accept()
    try:
        auth = await websocket.receive_json()
    except WebSocketDisconnect:
        return
    except (KeyError, TypeError, ValueError):
        # Binary or non-JSON frame
        auth = None

    user_id = await run_in_threadpool(_authenticate, auth)
    if user_id is None:
        logger.info("Rejected relay connection: bad auth frame")
        await websocket.send_json(connection_status("unauthorized"))
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    hub.register(user_id, websocket)
    try:
        await websocket.send_json(connection_status("connected"))
        while True:
            try:
                data = await websocket.receive_json()
            except (KeyError, TypeError, ValueError):
                continue
            if isinstance(data, dict) and data.get("type") == "ping":
                await websocket.send_json({"type": "pong"})
    except WebSocketDisconnect:
        pass
    finally:
        hub.unregister(user_id, websocket)
