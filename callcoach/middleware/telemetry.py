"""Telemetry middleware for request instrumentation."""

from __future__ import annotations

import time
from typing import Any

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from callcoach.telemetry import observe_request

_UNMEASURED_PATHS = frozenset({"/metrics"})


class TelemetryMiddleware(BaseHTTPMiddleware):
    """Collect request metrics for Prometheus, labelled by route template."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        if request.url.path in _UNMEASURED_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            observe_request(
                request.method,
                self._route_label(request),
                500,
                time.perf_counter() - start_time,
            )
            raise

        # The router fills in scope["route"] while handling the request.
        observe_request(
            request.method,
            self._route_label(request),
            response.status_code,
            time.perf_counter() - start_time,
        )
        return response

    @staticmethod
    def _route_label(request: Request) -> str:
        """Prefer ``/calls/{call_id}`` over the concrete path to bound label cardinality."""

        route: Any = request.scope.get("route")
        path = getattr(route, "path", None)
        return path or request.url.path
