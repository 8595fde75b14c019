"""
Retry with exponential backoff, and a circuit breaker for outside services
"""

import asyncio
import logging
import random
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Optional

from cropgenius.core.errors import CircuitOpenError, classify_error

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    jitter: bool = True
    retry_condition: Optional[Callable[[Exception], bool]] = None


def compute_delay(attempt: int, config: RetryConfig) -> float:
    """Delay before retry number `attempt` (0-based)"""
    delay = min(config.base_delay * (config.backoff_multiplier ** attempt), config.max_delay)
    if config.jitter:
        delay = random.uniform(0, delay)
    return delay


def _should_retry(error: Exception, config: RetryConfig) -> bool:
    if config.retry_condition is not None:
        return config.retry_condition(error)
    return classify_error(error).retryable


async def retry_async(
    operation: Callable[[], Awaitable[Any]],
    config: Optional[RetryConfig] = None,
    operation_name: str = "operation",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Any:
    """
    Run `operation` until it succeeds, retries are exhausted, or the error is not retryable.
    The last error is re-raised.
    """
    config = config or RetryConfig()

    for attempt in range(config.max_retries + 1):
        try:
            return await operation()
        except Exception as e:
            if attempt >= config.max_retries or not _should_retry(e, config):
                raise
            delay = compute_delay(attempt, config)
            logger.warning(
                f"🔁 {operation_name} failed (attempt {attempt + 1}/{config.max_retries + 1}): {e}. "
                f"Retrying in {delay:.2f}s"
            )
            await sleep(delay)


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass
class CircuitMetrics:
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    consecutive_failures: int = 0
    average_response_time: float = 0.0
    last_failure_time: Optional[float] = None

    def as_dict(self) -> Dict:
        return {
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "failed_requests": self.failed_requests,
            "consecutive_failures": self.consecutive_failures,
            "average_response_time": round(self.average_response_time, 4),
            "last_failure_time": self.last_failure_time,
        }


@dataclass
class CircuitBreaker:
    """
    CLOSED: calls pass through.
    OPEN: calls fail fast until reset_timeout has elapsed since the last failure.
    HALF_OPEN: one trial call; success closes the circuit, failure reopens it.
    """
    name: str
    failure_threshold: int = 5
    reset_timeout: float = 60.0
    clock: Callable[[], float] = time.monotonic
    state: CircuitState = CircuitState.CLOSED
    metrics: CircuitMetrics = field(default_factory=CircuitMetrics)

    def _before_call(self):
        if self.state == CircuitState.OPEN:
            elapsed = self.clock() - (self.metrics.last_failure_time or 0)
            if elapsed >= self.reset_timeout:
                self.state = CircuitState.HALF_OPEN
                logger.info(f"🟡 Circuit '{self.name}' half-open, probing")
            else:
                raise CircuitOpenError(
                    f"{self.name} is temporarily unavailable",
                    retry_after=int(self.reset_timeout - elapsed) + 1,
                )

    def _record(self, started: float, success: bool):
        duration = self.clock() - started
        m = self.metrics
        m.total_requests += 1
        m.average_response_time += (duration - m.average_response_time) / m.total_requests

        if success:
            m.successful_requests += 1
            m.consecutive_failures = 0
            if self.state != CircuitState.CLOSED:
                logger.info(f"🟢 Circuit '{self.name}' closed")
            self.state = CircuitState.CLOSED
            return

        m.failed_requests += 1
        m.consecutive_failures += 1
        m.last_failure_time = self.clock()
        if self.state == CircuitState.HALF_OPEN or m.consecutive_failures >= self.failure_threshold:
            if self.state != CircuitState.OPEN:
                logger.warning(
                    f"🔴 Circuit '{self.name}' opened after {m.consecutive_failures} consecutive failures"
                )
            self.state = CircuitState.OPEN

    async def call(self, operation: Callable[[], Awaitable[Any]]) -> Any:
        self._before_call()
        started = self.clock()
        try:
            result = await operation()
        except Exception:
            self._record(started, success=False)
            raise
        self._record(started, success=True)
        return result

    def reset(self):
        self.state = CircuitState.CLOSED
        self.metrics = CircuitMetrics()

    def status(self) -> Dict:
        return {"name": self.name, "state": self.state.value, **self.metrics.as_dict()}
