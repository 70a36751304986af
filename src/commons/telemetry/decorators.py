"""Timing decorator and scoped logging context."""

import functools
import inspect
import logging
import time
from collections.abc import Callable
from contextvars import Token
from typing import Any, ParamSpec, TypeVar, overload

from src.commons.telemetry.logger import get_log_context, get_logger, log_context_var

P = ParamSpec("P")
R = TypeVar("R")


@overload
def timed(
    func: Callable[P, R],
) -> Callable[P, R]: ...


@overload
def timed(
    *,
    logger: logging.Logger | None = None,
    level: int = logging.DEBUG,
    threshold_ms: float | None = None,
    operation: str | None = None,
) -> Callable[[Callable[P, R]], Callable[P, R]]: ...


def timed(
    func: Callable[P, R] | None = None,
    *,
    logger: logging.Logger | None = None,
    level: int = logging.DEBUG,
    threshold_ms: float | None = None,
    operation: str | None = None,
) -> Callable[P, R] | Callable[[Callable[P, R]], Callable[P, R]]:
    """Decorator to measure and log execution time.

    The record carries ``duration_ms``, ``operation`` and ``outcome``
    ("ok" or the exception class name) as structured fields.

    Args:
        func: The function to decorate (when used without parentheses).
        logger: Optional logger instance.
        level: Log level for timing messages.
        threshold_ms: Only log if execution exceeds this threshold.
        operation: Name reported in the log record. Defaults to the
            function's qualified name.

    Returns:
        Decorated function.
    """

    def decorator(fn: Callable[P, R]) -> Callable[P, R]:
        log = logger or get_logger(fn.__module__)
        op_name = operation or fn.__qualname__

        def _emit(start: float, outcome: str) -> None:
            elapsed_ms = (time.perf_counter() - start) * 1000
            if threshold_ms is None or elapsed_ms >= threshold_ms:
                log.log(
                    level,
                    f"{op_name} finished",
                    extra={
                        "operation": op_name,
                        "duration_ms": round(elapsed_ms, 2),
                        "outcome": outcome,
                    },
                )

        @functools.wraps(fn)
        def sync_wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            start = time.perf_counter()
            outcome = "ok"
            try:
                return fn(*args, **kwargs)
            except BaseException as e:
                outcome = type(e).__name__
                raise
            finally:
                _emit(start, outcome)

        @functools.wraps(fn)
        async def async_wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            start = time.perf_counter()
            outcome = "ok"
            try:
                return await fn(*args, **kwargs)  # type: ignore[misc, no-any-return]
            except BaseException as e:
                outcome = type(e).__name__
                raise
            finally:
                _emit(start, outcome)

        if inspect.iscoroutinefunction(fn):
            return async_wrapper  # type: ignore[return-value]
        return sync_wrapper

    if func is not None:
        return decorator(func)
    return decorator


class LogContext:
    """Adds key/values to every log record emitted inside the block.

    Works as a sync or async context manager:

        async with LogContext(job_name=job.job_name, channel_id=channel_id):
            ...
    """

    def __init__(self, **kwargs: Any) -> None:
        self.context = kwargs
        self._token: Token[dict[str, Any]] | None = None

    def __enter__(self) -> "LogContext":
        self._token = log_context_var.set({**get_log_context(), **self.context})
        return self

    def __exit__(self, *args: Any) -> None:
        if self._token is not None:
            log_context_var.reset(self._token)
            self._token = None

    async def __aenter__(self) -> "LogContext":
        return self.__enter__()

    async def __aexit__(self, *args: Any) -> None:
        self.__exit__(*args)
