"""Timing helpers for scoring runs: a decorator and a block context manager"""

import functools
import time

from flask import current_app, g, has_app_context, has_request_context

from fitcomp.utils.logging_config import get_logger

logger = get_logger(__name__)


def _slow_threshold():
    if has_app_context():
        return current_app.config.get("SLOW_FUNCTION_THRESHOLD", 1.0)
    return 1.0


def timer(func):
    """Log how long `func` took; WARNING above SLOW_FUNCTION_THRESHOLD"""

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        started = time.perf_counter()
        try:
            result = func(*args, **kwargs)
        except Exception as e:
            logger.error(
                f"Function {func.__name__} failed after "
                f"{time.perf_counter() - started:.2f}s: {e}"
            )
            raise

        elapsed = time.perf_counter() - started
        threshold = _slow_threshold()
        if elapsed > threshold:
            logger.warning(
                f"Slow function {func.__name__} took {elapsed:.2f}s (threshold: {threshold}s)"
            )
        else:
            logger.debug(f"Function {func.__name__} executed in {elapsed:.2f}s")
        return result

    return wrapper


class PerformanceMonitor:
    """Context manager for monitoring performance of code blocks"""

    def __init__(self, operation_name, log_threshold=0.1):
        self.operation_name = operation_name
        self.log_threshold = log_threshold
        self.start_time = None
        self.duration = None

    def __enter__(self):
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.duration = time.perf_counter() - self.start_time

        if self.duration > self.log_threshold:
            if exc_type:
                logger.error(
                    f"Operation '{self.operation_name}' failed after "
                    f"{self.duration:.3f}s: {exc_val}"
                )
            else:
                logger.info(
                    f"Operation '{self.operation_name}' completed in {self.duration:.3f}s"
                )

        # Background jobs run outside a request; only aggregate per request
        if has_request_context():
            metrics = g.setdefault("performance_metrics", [])
            metrics.append(
                {
                    "operation": self.operation_name,
                    "duration": self.duration,
                    "success": exc_type is None,
                }
            )

        return False
