"""
Analytics events and performance measurement

Events and timings are written to the "speddy.analytics" logger so they can be
shipped by whatever log pipeline the deployment uses.
"""

import logging
import time
from typing import Any

from .config import SLOW_OPERATION_THRESHOLD

logger = logging.getLogger("speddy.analytics")


def track_event(event: str, **properties: Any) -> None:
    """Emit a named analytics event"""
    logger.info(f"📈 {event} {properties}")


class PerformanceTimer:
    """Measures one operation; call end() exactly once"""

    def __init__(self, operation: str, category: str, threshold: float = SLOW_OPERATION_THRESHOLD):
        self.operation = operation
        self.category = category
        self.threshold = threshold
        self.started = time.perf_counter()
        self.elapsed: float | None = None

    def end(self, **metadata: Any) -> float:
        if self.elapsed is not None:
            return self.elapsed

        self.elapsed = time.perf_counter() - self.started
        message = f"⏱️ {self.category}:{self.operation} took {self.elapsed * 1000:.1f}ms {metadata}"
        if self.elapsed > self.threshold:
            logger.warning(f"🐌 Slow operation - {message}")
        else:
            logger.debug(message)
        return self.elapsed


def measure_performance(operation: str, category: str = "api") -> PerformanceTimer:
    return PerformanceTimer(operation, category)
