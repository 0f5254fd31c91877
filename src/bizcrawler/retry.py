import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception_type, stop_after_attempt

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try an I/O call and how long each try may take.

    ``base_timeout`` is unit-agnostic; callers pass milliseconds or seconds,
    whatever the wrapped call expects.
    """
    max_attempts: int = 2
    base_timeout: float = 15000
    backoff: float = 2.0

    def timeout_for(self, attempt: int) -> float:
        """Timeout for a 1-based attempt number."""
        return self.base_timeout * (self.backoff ** (attempt - 1))

    @classmethod
    def single(cls, timeout: float) -> "RetryPolicy":
        return cls(max_attempts=1, base_timeout=timeout, backoff=1.0)


async def call_with_retry(
    operation: Callable[[float, int], Awaitable[T]],
    policy: RetryPolicy,
    retry_on: Tuple[Type[BaseException], ...] = (),
    label: str = "",
) -> T:
    """Run ``operation(timeout, attempt)`` until it succeeds or attempts run out.

    Only exceptions listed in ``retry_on`` trigger another attempt; anything
    else, or a retryable error on the last attempt, propagates.
    """
    def log_retry(state: RetryCallState):
        attempt = state.attempt_number
        logger.warning(f"{label or 'operation'} failed on attempt {attempt}/{policy.max_attempts} "
                       f"({state.outcome.exception()}); retrying with timeout {policy.timeout_for(attempt + 1):g}")

    async for attempt in AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        retry=retry_if_exception_type(retry_on),
        before_sleep=log_retry,
        reraise=True,
    ):
        with attempt:
            number = attempt.retry_state.attempt_number
            return await operation(policy.timeout_for(number), number)
