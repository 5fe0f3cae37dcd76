"""Push ``odds_update`` events to connected clients."""

from __future__ import annotations

import logging
from typing import Iterable

from oddsline.config import settings
from oddsline.services.websocket_manager import websocket_manager

logger = logging.getLogger("oddsline.odds_events")

ODDS_UPDATE_EVENT = "odds_update"


async def broadcast_odds_update(fixture_ids: Iterable[str], *, reason: str) -> int:
    """Tell clients to refetch fixture odds. Returns the number of deliveries."""
    if not settings.WS_EVENTS_ENABLED:
        return 0
    ids = sorted({str(fid) for fid in fixture_ids if fid})
    delivered = await websocket_manager.broadcast(
        event_type=ODDS_UPDATE_EVENT,
        data={"fixture_ids": ids, "reason": reason},
        selectors={"fixture_ids": ids},
        meta={"source": reason},
    )
    logger.info("odds_update broadcast reason=%s fixtures=%d delivered=%d", reason, len(ids), delivered)
    return delivered
