"""
backend/oddsline/client/session.py

Purpose:
    Per-session container wiring the API client, query cache, betting slip
    and live odds notifier together. Construct one per signed-in page
    session and pass it to whatever needs the slip or cached listings.

Dependencies:
    - oddsline.client.api
    - oddsline.client.betting_slip
    - oddsline.client.odds_notifier
    - oddsline.client.query_cache
    - oddsline.client.submission
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

from oddsline.client.api import OddslineApi
from oddsline.client.betting_slip import BettingSlip
from oddsline.client.odds_notifier import Connector, LiveOddsNotifier, build_socket_url
from oddsline.client.query_cache import (
    FIXTURES_KEY,
    LIVE_FIXTURES_KEY,
    USER_BETS_KEY,
    USER_KEY,
    QueryCache,
)
from oddsline.client.submission import SubmissionResult, submit_betting_slip
from oddsline.config import settings

logger = logging.getLogger("oddsline.client.session")


@dataclass
class BettingSession:
    api: OddslineApi
    cache: QueryCache
    slip: BettingSlip
    notifier: LiveOddsNotifier

    @classmethod
    def create(
        cls,
        base_url: str,
        *,
        api: OddslineApi | None = None,
        connector: Connector | None = None,
        **http_kwargs: Any,
    ) -> "BettingSession":
        cache = QueryCache(stale_after_seconds=settings.CLIENT_CACHE_STALE_SECONDS)
        return cls(
            api=api or OddslineApi.for_base_url(base_url, **http_kwargs),
            cache=cache,
            slip=BettingSlip(),
            notifier=LiveOddsNotifier(build_socket_url(base_url), cache, connector=connector),
        )

    async def __aenter__(self) -> "BettingSession":
        await self.notifier.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self.notifier.stop()
        await self.api.aclose()
        logger.info("Betting session closed")

    # ---------- Cached reads ----------

    async def fixtures(self) -> list[dict]:
        return await self.cache.get(FIXTURES_KEY, self.api.get_fixtures)

    async def live_fixtures(self) -> list[dict]:
        return await self.cache.get(LIVE_FIXTURES_KEY, self.api.get_live_fixtures)

    async def current_user(self) -> dict | None:
        return await self.cache.get(USER_KEY, self.api.get_current_user)

    async def bet_history(self) -> list[dict]:
        return await self.cache.get(USER_BETS_KEY, self.api.get_user_bets)

    # ---------- Slip ----------

    async def place_bets(self) -> SubmissionResult:
        user = await self.current_user()
        return await submit_betting_slip(self.slip, self.api, user=user, cache=self.cache)
