"""Telemetry and observability helpers for import, validation and review analysis."""

from .instrumentation import StageTimer, instrument_stage, timed_stage
from .trace import (
    OperationTrace,
    get_current_trace,
    record_operation_summary,
    reset_current_trace,
    set_current_trace,
)

__all__ = [
    "OperationTrace",
    "StageTimer",
    "get_current_trace",
    "instrument_stage",
    "record_operation_summary",
    "reset_current_trace",
    "set_current_trace",
    "timed_stage",
]
