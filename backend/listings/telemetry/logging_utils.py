from __future__ import annotations

import logging

from .trace import get_current_trace

PERF_LEVEL_NUM = 25
PERF_LEVEL_NAME = "PERF"
PERF_LOGGER_NAME = "listings.perf"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s [%(request_id)s] %(message)s"


class RequestContextFilter(logging.Filter):
    """Stamps each record with the request id of the active operation trace, or "-"."""

    def filter(self, record: logging.LogRecord) -> bool:
        trace = get_current_trace()
        record.request_id = str(trace.request_id) if trace is not None else "-"
        return True


def register_perf_level() -> None:
    if logging.getLevelName(PERF_LEVEL_NUM) != PERF_LEVEL_NAME:
        logging.addLevelName(PERF_LEVEL_NUM, PERF_LEVEL_NAME)


def resolve_log_level(value: str | None, fallback: int = logging.INFO) -> int:
    if not value:
        return fallback
    normalized = value.strip().upper()
    if normalized == PERF_LEVEL_NAME:
        return PERF_LEVEL_NUM
    resolved = logging.getLevelName(normalized)
    if isinstance(resolved, int):
        return resolved
    return fallback


def configure_logging(app_level: str, perf_level: str) -> None:
    """Configure the root handler once; later calls only adjust levels."""
    register_perf_level()
    app_log_level = resolve_log_level(app_level, fallback=logging.INFO)
    perf_log_level = resolve_log_level(perf_level, fallback=PERF_LEVEL_NUM)

    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.addFilter(RequestContextFilter())
        root.addHandler(handler)
    root.setLevel(app_log_level)

    logging.getLogger(PERF_LOGGER_NAME).setLevel(perf_log_level)
