import logging
from datetime import datetime

from oddsline.services.fixture_service import fixture_ids_with_odds_changed_since
from oddsline.services.odds_events import broadcast_odds_update
from oddsline.utils import utcnow

logger = logging.getLogger("oddsline.odds_broadcaster")

_last_tick: datetime | None = None


async def broadcast_odds_changes() -> int:
    """Scheduler job: announce fixtures whose odds changed since the previous tick.

    The first tick only sets the watermark. Nothing is sent when nothing changed.
    """
    global _last_tick

    now = utcnow()
    since, _last_tick = _last_tick, now
    if since is None:
        return 0

    fixture_ids = await fixture_ids_with_odds_changed_since(since)
    if not fixture_ids:
        logger.debug("No odds changes since %s", since.isoformat())
        return 0
    return await broadcast_odds_update(fixture_ids, reason="odds_changed")


def reset_watermark(value: datetime | None = None) -> None:
    global _last_tick
    _last_tick = value
