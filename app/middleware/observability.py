from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from app.core.metrics import request_metrics
from app.core.request_context import clear_request_context, set_request_context

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def _route_template(request: Request) -> str:
    """Path da rota (/orders/pos/{order_id}) para as métricas não explodirem por id."""
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class ObservabilityMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        set_request_context(request_id=request_id)
        started = time.perf_counter()

        response = None
        try:
            response = await call_next(request)
        finally:
            status_code = response.status_code if response is not None else 500
            self._record(request, request_id, status_code, started)
            clear_request_context()

        response.headers[REQUEST_ID_HEADER] = request_id
        return response

    def _record(self, request: Request, request_id: str, status_code: int, started: float) -> None:
        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        endpoint = _route_template(request)
        merchant_id = getattr(request.state, "merchant_id", None)

        request_metrics.observe(
            endpoint=endpoint,
            method=request.method,
            status_code=status_code,
            duration_ms=duration_ms,
            merchant_id=str(merchant_id) if merchant_id else None,
        )
        log = logger.warning if status_code >= 500 else logger.info
        log(
            "request completed",
            extra={
                "request_id": request_id,
                "merchant_id": merchant_id,
                "user_id": getattr(request.state, "user_id", None),
                "endpoint": endpoint,
                "method": request.method,
                "status_code": status_code,
                "duration_ms": duration_ms,
            },
        )
