from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from functools import wraps
from time import perf_counter
from typing import Callable, ParamSpec, TypeVar

from .trace import get_current_trace

P = ParamSpec("P")
R = TypeVar("R")


@dataclass
class StageTimer:
    stage: str
    elapsed_ms: float = 0.0


@contextmanager
def timed_stage(stage: str) -> Iterator[StageTimer]:
    timer = StageTimer(stage=stage)
    started = perf_counter()
    try:
        yield timer
    finally:
        timer.elapsed_ms = (perf_counter() - started) * 1000.0
        trace = get_current_trace()
        if trace is not None:
            trace.record_stage_time(stage, timer.elapsed_ms)


def instrument_stage(stage: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            with timed_stage(stage):
                return func(*args, **kwargs)

        return wrapper

    return decorator
