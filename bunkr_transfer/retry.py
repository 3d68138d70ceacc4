import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

import httpx

from .types import BunkrError, TransportError


logger = logging.getLogger(__name__)

T = TypeVar("T")

# Only failures below the HTTP layer are retried. A response that arrived,
# whatever its status, goes back to the caller untouched.
RETRYABLE_ERRORS: tuple[type[Exception], ...] = (httpx.TransportError, TransportError)
# Errors that fail a single file without stopping the rest of the batch.
PER_FILE_ERRORS: tuple[type[Exception], ...] = (
    BunkrError,
    httpx.HTTPError,
    httpx.InvalidURL,
    httpx.StreamError,
    OSError,
)


@dataclass(frozen=True)
class RetryPolicy:
    retries: int = 5
    base_delay: float = 1.0
    multiplier: float = 2.0

    def delay(self, attempt: int) -> float:
        return self.base_delay * (self.multiplier**attempt)


DEFAULT_RETRY = RetryPolicy()


async def request_with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy = DEFAULT_RETRY,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    on_retry: Optional[Callable[[int, float, Exception], None]] = None,
) -> T:
    for attempt in range(policy.retries + 1):
        try:
            return await operation()
        except RETRYABLE_ERRORS as exc:
            if attempt >= policy.retries:
                logger.error(f"All {policy.retries} retries failed: {exc}")
                if isinstance(exc, TransportError):
                    raise
                raise TransportError(str(exc) or type(exc).__name__) from exc
            wait = policy.delay(attempt)
            logger.warning(
                f"Attempt {attempt + 1}/{policy.retries + 1} failed: {exc!r}. "
                f"Retrying in {wait:.1f}s..."
            )
            if on_retry:
                on_retry(attempt + 1, wait, exc)
            await sleep(wait)
    raise RuntimeError("unreachable")
