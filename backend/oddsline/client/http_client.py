import asyncio
import logging
import time
from typing import Optional
from urllib.parse import urlparse

import httpx

logger = logging.getLogger("oddsline.client.http")

# Retryable HTTP status codes
_RETRYABLE_STATUSES = {429, 500, 502, 503, 504}
# Bet placement is a POST and must never be replayed.
_IDEMPOTENT_METHODS = {"GET", "HEAD", "OPTIONS"}
_MAX_RETRY_DELAY = 30.0


class CircuitOpenError(RuntimeError):
    pass


class CircuitBreaker:
    """Stops hammering the backend after repeated transport failures."""

    def __init__(self, failure_threshold: int = 5, recovery_timeout: float = 30.0):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self.last_failure_time: Optional[float] = None
        self.is_open = False

    def record_success(self) -> None:
        self.failure_count = 0
        self.is_open = False

    def record_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = time.monotonic()
        if self.failure_count >= self.failure_threshold and not self.is_open:
            self.is_open = True
            logger.warning("Circuit breaker OPEN after %d failures", self.failure_count)

    def can_attempt(self) -> bool:
        if not self.is_open:
            return True
        # Half-open after the recovery timeout
        if self.last_failure_time and (
            time.monotonic() - self.last_failure_time > self.recovery_timeout
        ):
            logger.info("Circuit breaker half-open, allowing retry")
            return True
        return False


def _parse_retry_after(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    if value is None:
        return None
    try:
        return float(value)
    except (ValueError, TypeError):
        return None


def _path_of(url: str) -> str:
    return urlparse(str(url)).path or str(url)


class ResilientClient:
    """httpx.AsyncClient wrapper: retries idempotent requests with exponential backoff."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 15.0,
        max_retries: int = 3,
        base_delay: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        cookies: Optional[dict] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            cookies=cookies,
        )
        self._max_retries = max(0, max_retries)
        self._base_delay = base_delay
        self.circuit = CircuitBreaker()

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        method = method.upper()
        if not self.circuit.can_attempt():
            raise CircuitOpenError(f"Circuit open, refusing {method} {_path_of(url)}")

        attempts = self._max_retries + 1 if method in _IDEMPOTENT_METHODS else 1
        last_exc: Optional[Exception] = None
        resp: Optional[httpx.Response] = None

        for attempt in range(attempts):
            try:
                resp = await self._client.request(method, url, **kwargs)
            except (httpx.TimeoutException, httpx.ConnectError, httpx.RemoteProtocolError) as exc:
                last_exc = exc
                self.circuit.record_failure()
                logger.warning(
                    "Network error on %s %s (attempt %d/%d): %s",
                    method, _path_of(url), attempt + 1, attempts, exc,
                )
                if attempt + 1 < attempts:
                    await asyncio.sleep(min(self._base_delay * (2 ** attempt), _MAX_RETRY_DELAY))
                continue

            if resp.status_code not in _RETRYABLE_STATUSES:
                self.circuit.record_success()
                return resp

            logger.warning(
                "Retryable status %d on %s %s (attempt %d/%d)",
                resp.status_code, method, _path_of(url), attempt + 1, attempts,
            )
            if attempt + 1 < attempts:
                delay = _parse_retry_after(resp)
                if delay is None:
                    delay = self._base_delay * (2 ** attempt)
                await asyncio.sleep(min(delay, _MAX_RETRY_DELAY))

        if resp is not None:
            return resp

        logger.error("All %d attempts failed for %s %s: %s", attempts, method, _path_of(url), last_exc)
        raise last_exc  # type: ignore[misc]

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def aclose(self) -> None:
        await self._client.aclose()
