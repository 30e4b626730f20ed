from __future__ import annotations

import logging
import time
from typing import Optional
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from core.logging_config import bind_request_id, setup_logging, unbind_request_id

logger = logging.getLogger("api.access")


def configure_logging(level: str = "INFO") -> None:
    setup_logging(level)
    # uvicorn ships its own handlers; route everything through the JSON one.
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uv = logging.getLogger(name)
        uv.handlers.clear()
        uv.propagate = True


def new_request_id() -> str:
    return uuid4().hex


def monotonic_ms() -> float:
    return time.perf_counter() * 1000.0


def request_log_fields(
    *, method: str, path: str, status_code: int, duration_ms: float, client_ip: Optional[str]
) -> dict[str, object]:
    return {
        "ctx_method": method,
        "ctx_path": path,
        "ctx_status_code": int(status_code),
        "ctx_duration_ms": round(float(duration_ms), 2),
        "ctx_client_ip": client_ip or "",
    }


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Tags each request with an id (echoed back in ``header_name``) and logs one access line."""

    def __init__(self, app, header_name: str = "X-Request-ID") -> None:
        super().__init__(app)
        self.header_name = header_name or "X-Request-ID"

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = (request.headers.get(self.header_name) or "").strip() or new_request_id()
        token = bind_request_id(request_id)
        started = monotonic_ms()
        client_ip = getattr(request.client, "host", None)
        try:
            response = await call_next(request)
        except Exception:
            logger.exception("http_request_error", extra=self._fields(request, 500, started, client_ip))
            raise
        else:
            response.headers[self.header_name] = request_id
            logger.info("http_request", extra=self._fields(request, response.status_code, started, client_ip))
            return response
        finally:
            unbind_request_id(token)

    @staticmethod
    def _fields(request: Request, status_code: int, started: float, client_ip: Optional[str]) -> dict[str, object]:
        return request_log_fields(
            method=request.method,
            path=request.url.path,
            status_code=status_code,
            duration_ms=monotonic_ms() - started,
            client_ip=client_ip,
        )
