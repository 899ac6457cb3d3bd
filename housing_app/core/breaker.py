import logging
import time
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Optional

logger = logging.getLogger(__name__)


class CircuitOpenError(Exception):
    pass


class CircuitBreaker:
    def __init__(
        self,
        failure_threshold: int = 3,
        base_recovery_time: int = 10,
        max_recovery_time: int = 60,
        enable_retry_queue: bool = False,
        max_retries: int = 1,
    ):
        self.failure_count = 0
        self.failure_threshold = failure_threshold
        self.base_recovery_time = base_recovery_time
        self.max_recovery_time = max_recovery_time
        self.last_failure_time = 0.0
        self.state = "CLOSED"
        self.max_retries = max_retries
        self.retry_queue: Optional[Deque[dict]] = (
            deque() if enable_retry_queue else None
        )

    @property
    def current_recovery_time(self) -> float:
        overflow = max(self.failure_count - self.failure_threshold, 0)
        return min(self.base_recovery_time * (2**overflow), self.max_recovery_time)

    def _open(self):
        self.state = "OPEN"
        self.last_failure_time = time.monotonic()
        logger.warning(f"Publisher circuit opened after {self.failure_count} failures.")

    def _half_open(self):
        self.state = "HALF_OPEN"
        logger.info("Publisher circuit half-open: probing broker.")

    def _close(self):
        if self.state != "CLOSED":
            logger.info("Publisher circuit closed.")
        self.state = "CLOSED"
        self.failure_count = 0

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        if self.state == "OPEN":
            elapsed = time.monotonic() - self.last_failure_time
            cooldown = self.current_recovery_time
            if elapsed < cooldown:
                raise CircuitOpenError(
                    f"Circuit open, retry after {cooldown - elapsed:.1f}s"
                )
            self._half_open()

        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            self.failure_count += 1
            logger.error(f"Circuit call failed ({self.failure_count}): {e}")

            if self.failure_count >= self.failure_threshold:
                self._open()

            if self.retry_queue is not None:
                self.retry_queue.append(
                    {"func": func, "args": args, "kwargs": kwargs, "retries": 0}
                )
                logger.info(f"Queued failed publish ({len(self.retry_queue)} pending).")
            raise

        self._close()
        if self.retry_queue:
            await self._flush_retry_queue()
        return result

    async def _flush_retry_queue(self):
        while self.retry_queue:
            item = self.retry_queue.popleft()
            if item["retries"] >= self.max_retries:
                logger.warning(
                    f"Max retries reached ({self.max_retries}). Dropping queued publish."
                )
                continue

            try:
                await item["func"](*item["args"], **item["kwargs"])
                logger.info("Retried queued publish successfully.")
            except Exception as e:
                logger.error(f"Queued publish retry failed: {e}")
                item["retries"] += 1
                self.retry_queue.appendleft(item)
                break


breaker = CircuitBreaker(
    failure_threshold=3,
    base_recovery_time=10,
    enable_retry_queue=True,
    max_retries=1,
)
