import hashlib
import json
import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("oddsline.http")

_MAX_INBOUND_REQUEST_ID = 64


def _request_id_for(request: Request) -> str:
    # Reuse the proxy's id so client, proxy and backend lines correlate.
    inbound = (request.headers.get("x-request-id") or "").strip()
    if inbound and len(inbound) <= _MAX_INBOUND_REQUEST_ID:
        return inbound
    return uuid.uuid4().hex[:8]


def _log_level_for(status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    if status_code >= 400:
        return logging.WARNING
    return logging.INFO


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """One JSON log line per HTTP request."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = _request_id_for(request)
        request.state.request_id = request_id
        started = time.perf_counter()

        response: Response = await call_next(request)

        record = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status": response.status_code,
            "duration_ms": round((time.perf_counter() - started) * 1000, 2),
            "client_ip_hash": hashlib.sha256(
                (request.client.host or "").encode()
            ).hexdigest()[:12] if request.client else None,
        }
        logger.log(_log_level_for(response.status_code), json.dumps(record))

        response.headers["X-Request-ID"] = request_id
        return response


def setup_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )
