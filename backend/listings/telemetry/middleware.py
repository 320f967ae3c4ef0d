from __future__ import annotations

import logging

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from ..config import settings
from .logging_utils import PERF_LEVEL_NUM, PERF_LOGGER_NAME
from .trace import OperationTrace, reset_current_trace, set_current_trace

perf_logger = logging.getLogger(PERF_LOGGER_NAME)


class TelemetryMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        trace = OperationTrace(path=request.url.path, method=request.method)
        request.state.request_id = str(trace.request_id)
        token = set_current_trace(trace)

        response: Response | None = None
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            trace.finalize()
            if response is not None and request.url.path.startswith("/api/"):
                response.headers["X-Request-Id"] = str(trace.request_id)
                if trace.active:
                    response.headers["X-Operation-Performance"] = trace.to_header_value()

            if settings.telemetry_enabled:
                self._log_trace(trace, status_code)
            reset_current_trace(token)

    def _log_trace(self, trace: OperationTrace, status_code: int) -> None:
        if not trace.active:
            return

        perf_logger.log(
            PERF_LEVEL_NUM,
            "operation_trace request_id=%s status=%s operation=%s path=%s stages=%s total_ms=%s items=%s errors=%s",
            trace.request_id,
            status_code,
            trace.operation,
            trace.path,
            {stage: round(ms, 3) for stage, ms in trace.stage_times_ms.items()},
            round(trace.total_time_ms or 0.0, 3),
            trace.item_count,
            trace.error_count,
        )
