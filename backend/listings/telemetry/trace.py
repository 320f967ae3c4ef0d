from __future__ import annotations

import json
from contextvars import ContextVar, Token
from dataclasses import dataclass, field
from datetime import datetime, timezone
from time import perf_counter
from uuid import UUID, uuid4

_TRACE_CONTEXT: ContextVar["OperationTrace | None"] = ContextVar("operation_trace", default=None)


def _round_or_none(value: float | None) -> float | None:
    if value is None:
        return None
    return round(value, 3)


@dataclass
class OperationTrace:
    request_id: UUID = field(default_factory=uuid4)
    path: str = ""
    method: str = "GET"
    operation: str | None = None
    request_start_timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    stage_times_ms: dict[str, float] = field(default_factory=dict)
    item_count: int | None = None
    error_count: int | None = None
    total_time_ms: float | None = None
    _request_perf_counter_start: float = field(default_factory=perf_counter, repr=False)

    def mark_operation(self, operation: str) -> None:
        self.operation = operation.strip()

    def record_stage_time(self, stage: str, duration_ms: float) -> None:
        self.stage_times_ms[stage] = self.stage_times_ms.get(stage, 0.0) + duration_ms

    def set_item_summary(self, item_count: int, error_count: int = 0) -> None:
        self.item_count = item_count
        self.error_count = error_count

    @property
    def active(self) -> bool:
        return self.operation is not None

    def finalize(self) -> None:
        if self.total_time_ms is None:
            self.total_time_ms = (perf_counter() - self._request_perf_counter_start) * 1000.0

    def to_header_value(self) -> str:
        payload = {
            "request_id": str(self.request_id),
            "operation": self.operation,
            "stages_ms": {stage: _round_or_none(ms) for stage, ms in sorted(self.stage_times_ms.items())},
            "total_time_ms": _round_or_none(self.total_time_ms),
            "items": self.item_count,
            "errors": self.error_count,
        }
        return json.dumps(payload, separators=(",", ":"))


def get_current_trace() -> OperationTrace | None:
    return _TRACE_CONTEXT.get()


def set_current_trace(trace: OperationTrace) -> Token:
    return _TRACE_CONTEXT.set(trace)


def reset_current_trace(token: Token) -> None:
    _TRACE_CONTEXT.reset(token)


def record_operation_summary(operation: str, item_count: int, error_count: int = 0) -> None:
    trace = get_current_trace()
    if trace is None:
        return
    trace.mark_operation(operation)
    trace.set_item_summary(item_count, error_count)
