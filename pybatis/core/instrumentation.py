import functools
import time
from typing import Callable, Optional

from pybatis.core.metrics_core import MetricsStorage

EXECUTIONS_METRIC = "statement_executions_total"
DURATION_METRIC = "statement_duration_seconds"
IN_FLIGHT_METRIC = "statement_executions_in_progress"


class StatementInstrumentation:
    """
    Collects per-statement metrics for mapper operations.

    Disabled by default; enable() registers the metrics and every mapper call
    is recorded until disable() is called.
    """

    def __init__(self, metrics_storage: Optional[MetricsStorage] = None):
        self._core = metrics_storage or MetricsStorage()

    @property
    def enabled(self) -> bool:
        return self._core.enabled

    @property
    def storage(self) -> MetricsStorage:
        return self._core

    def enable(self):
        self._core.enable()
        self._core.counter(EXECUTIONS_METRIC, "Total mapper statement executions")
        self._core.histogram(DURATION_METRIC, "Mapper statement duration")
        self._core.gauge(IN_FLIGHT_METRIC, "Mapper statements currently executing")

    def disable(self):
        self._core.disable()

    def statement_started(self, statement: str):
        if self.enabled:
            self._core.gauge(IN_FLIGHT_METRIC).inc({"statement": statement})

    def record_statement(
        self, statement: str, duration_sec: float, error: Optional[BaseException] = None
    ):
        """Record one finished statement execution."""
        if not self.enabled:
            return

        status = type(error).__name__ if error is not None else "success"
        self._core.gauge(IN_FLIGHT_METRIC).dec({"statement": statement})
        self._core.counter(EXECUTIONS_METRIC).inc(
            {"statement": statement, "status": status}
        )
        self._core.histogram(DURATION_METRIC).observe(
            duration_sec, {"statement": statement}
        )


def instrument_operation(statement: str, method: Callable) -> Callable:
    """Wrap an async mapper operation so each call is timed and counted."""

    @functools.wraps(method)
    async def wrapper(*args, **kwargs):
        instrumentation = get_instrumentation()
        if not instrumentation.enabled:
            return await method(*args, **kwargs)

        instrumentation.statement_started(statement)
        start_time = time.perf_counter()
        error = None
        try:
            return await method(*args, **kwargs)
        except Exception as e:
            error = e
            raise
        finally:
            instrumentation.record_statement(
                statement, time.perf_counter() - start_time, error
            )

    return wrapper


_instrumentation = StatementInstrumentation()


def get_instrumentation() -> StatementInstrumentation:
    return _instrumentation


def set_instrumentation(instrumentation: StatementInstrumentation):
    global _instrumentation
    _instrumentation = instrumentation
