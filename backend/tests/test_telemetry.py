import json
import logging

from listings.telemetry import OperationTrace, record_operation_summary, reset_current_trace, set_current_trace, timed_stage
from listings.telemetry.logging_utils import PERF_LEVEL_NUM, RequestContextFilter, resolve_log_level


def test_resolve_log_level():
    assert resolve_log_level("perf") == PERF_LEVEL_NUM
    assert resolve_log_level("warning") == logging.WARNING
    assert resolve_log_level("nonsense", fallback=logging.ERROR) == logging.ERROR
    assert resolve_log_level(None) == logging.INFO


def test_stage_timings_and_summary_land_on_active_trace():
    trace = OperationTrace(path="/api/imports/businesses", method="POST")
    token = set_current_trace(trace)
    try:
        with timed_stage("import"):
            pass
        with timed_stage("import"):
            pass
        record_operation_summary("import_businesses", 4, 1)
    finally:
        reset_current_trace(token)

    trace.finalize()
    header = json.loads(trace.to_header_value())
    assert header["operation"] == "import_businesses"
    assert list(header["stages_ms"]) == ["import"]
    assert (header["items"], header["errors"]) == (4, 1)


def test_summary_without_trace_is_ignored():
    record_operation_summary("import_businesses", 1)


def test_request_context_filter_stamps_request_id():
    record = logging.LogRecord("listings", logging.INFO, __file__, 1, "hello", None, None)
    assert RequestContextFilter().filter(record) is True
    assert record.request_id == "-"

    trace = OperationTrace()
    token = set_current_trace(trace)
    try:
        RequestContextFilter().filter(record)
    finally:
        reset_current_trace(token)
    assert record.request_id == str(trace.request_id)
