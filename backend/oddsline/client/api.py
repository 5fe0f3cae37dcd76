"""Typed wrapper around the backend REST endpoints used by the client session."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from oddsline.client.http_client import ResilientClient
from oddsline.client.query_cache import FIXTURES_KEY, LIVE_FIXTURES_KEY, USER_BETS_KEY, USER_KEY, key_path
from oddsline.config import settings
from oddsline.models.betting_slip import BetSubmission

logger = logging.getLogger("oddsline.client.api")

BETS_PATH = "/api/bets"


class ApiError(Exception):
    """Non-2xx response from the backend."""

    def __init__(self, status_code: int, detail: Any):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"{status_code}: {self.message}")

    @property
    def message(self) -> str:
        if isinstance(self.detail, dict):
            return str(self.detail.get("message") or self.detail.get("detail") or self.detail)
        return str(self.detail)

    @property
    def code(self) -> str | None:
        if isinstance(self.detail, dict):
            code = self.detail.get("code")
            return str(code) if code else None
        return None


def _detail_of(response: httpx.Response) -> Any:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict) and "detail" in body:
        return body["detail"]
    return body


class OddslineApi:
    def __init__(self, http: ResilientClient):
        self._http = http

    @classmethod
    def for_base_url(cls, base_url: str, **kwargs: Any) -> "OddslineApi":
        http = ResilientClient(
            base_url,
            timeout=settings.CLIENT_HTTP_TIMEOUT_SECONDS,
            max_retries=settings.CLIENT_HTTP_MAX_RETRIES,
            base_delay=settings.CLIENT_HTTP_RETRY_BASE_DELAY,
            **kwargs,
        )
        return cls(http)

    async def _json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = await self._http.request(method, path, **kwargs)
        if response.status_code >= 400:
            raise ApiError(response.status_code, _detail_of(response))
        if not response.content:
            return None
        return response.json()

    async def get_fixtures(self) -> list[dict]:
        return await self._json("GET", key_path(FIXTURES_KEY))

    async def get_live_fixtures(self) -> list[dict]:
        return await self._json("GET", key_path(LIVE_FIXTURES_KEY))

    async def get_current_user(self) -> dict | None:
        """Return the signed-in user, or None for guests."""
        try:
            return await self._json("GET", key_path(USER_KEY))
        except ApiError as exc:
            if exc.status_code == 401:
                return None
            raise

    async def get_user_bets(self) -> list[dict]:
        return await self._json("GET", key_path(USER_BETS_KEY))

    async def place_bet(self, submission: BetSubmission) -> dict:
        payload = submission.to_payload()
        logger.info(
            "Placing bet fixture=%s market=%s stake=%s odds=%s",
            payload["fixtureId"], payload["market"], payload["stake"], payload["odds"],
        )
        return await self._json("POST", BETS_PATH, json=payload)

    async def aclose(self) -> None:
        await self._http.aclose()
