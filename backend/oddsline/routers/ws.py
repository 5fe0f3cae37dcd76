"""
backend/oddsline/routers/ws.py

Purpose:
    ``/ws`` push endpoint. Guests may connect; a valid access token (cookie
    or ``?token=``) attaches the user id to the connection. Clients may send
    ``ping`` or JSON subscription commands; everything else is answered with
    an error frame and otherwise ignored.

Dependencies:
    - oddsline.services.websocket_manager
    - oddsline.services.auth_service
"""

import json
import logging
from typing import Any, Optional, Union

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

import oddsline.database as _db
from oddsline.config import settings
from oddsline.services.auth_service import load_active_user, user_id_from_token
from oddsline.services.websocket_manager import (
    SUBSCRIPTION_COMMANDS,
    ConnectionLimitError,
    ConnectionNotFoundError,
    WebSocketManager,
    websocket_manager,
)

logger = logging.getLogger("oddsline.ws")

router = APIRouter()

CLOSE_TOO_MANY_CONNECTIONS = 4002
CLOSE_DISABLED = 4003


def _token_from_ws(ws: Any) -> Optional[str]:
    token = ws.cookies.get("access_token")
    if token:
        return token
    return ws.query_params.get("token") or None


async def _resolve_ws_user_id(token: Optional[str]) -> Optional[str]:
    if not token:
        return None
    user_id = user_id_from_token(token)
    if not user_id:
        return None
    user = await load_active_user(_db.db, user_id)
    return str(user["_id"]) if user else None


def _error(code: str) -> dict:
    return {"type": "error", "data": {"code": code}}


async def handle_client_message(
    connection_id: str,
    raw: str,
    manager: Optional[WebSocketManager] = None,
) -> Union[str, dict, None]:
    """Build the reply to one client frame."""
    if manager is None:
        manager = websocket_manager
    if raw.strip() == "ping":
        return "pong"

    try:
        payload = json.loads(raw)
    except ValueError:
        logger.debug("WS %s sent invalid JSON", connection_id)
        return _error("invalid_json")
    if not isinstance(payload, dict):
        return _error("invalid_message")

    command = payload.get("type")
    if command in SUBSCRIPTION_COMMANDS:
        data = payload.get("data")
        try:
            filters = await manager.update_filters(connection_id, command, data if isinstance(data, dict) else {})
        except ConnectionNotFoundError:
            # Dropped by a failed send or the heartbeat while this frame was queued.
            return _error("connection_not_found")
        return {"type": "subscriptions", "data": filters}
    return _error("unsupported_command")


@router.websocket(settings.WS_PATH)
async def websocket_events(ws: WebSocket):
    if not settings.WS_EVENTS_ENABLED:
        await ws.close(code=CLOSE_DISABLED, reason="Realtime disabled")
        return
    if websocket_manager.is_full:
        await ws.close(code=CLOSE_TOO_MANY_CONNECTIONS, reason="Too many connections")
        return

    user_id = await _resolve_ws_user_id(_token_from_ws(ws))
    try:
        connection_id = await websocket_manager.connect(ws, user_id=user_id)
    except ConnectionLimitError:
        await ws.close(code=CLOSE_TOO_MANY_CONNECTIONS, reason="Too many connections")
        return

    try:
        while True:
            raw = await ws.receive_text()
            await websocket_manager.touch(connection_id)
            reply = await handle_client_message(connection_id, raw)
            if isinstance(reply, str):
                await ws.send_text(reply)
            elif reply is not None:
                await ws.send_json(reply)
    except WebSocketDisconnect:
        pass
    finally:
        await websocket_manager.disconnect(connection_id)
