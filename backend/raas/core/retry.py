"""
Bounded retry and timeout for external calls.

Every process spawn and Docker API call goes through run_with_retry so each
call site states its attempt count, backoff and per-attempt timeout.

Usage:
    from raas.core.retry import RetryPolicy, run_with_retry

    policy = RetryPolicy(attempts=3, wait_seconds=2.0, timeout=60)
    network = await run_with_retry(policy, lambda: create_network(name), "network create")
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from raas.core.exceptions import ProcessTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt count, fixed backoff and per-attempt timeout for one call site."""

    attempts: int = 1
    wait_seconds: float = 0.0
    timeout: Optional[float] = None


async def run_with_retry(
    policy: RetryPolicy,
    operation: Callable[[], Awaitable[T]],
    description: str,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
) -> T:
    """
    Run an async operation under a retry policy.

    Args:
        policy: Attempts, wait and timeout to apply
        operation: Zero-argument callable returning a fresh awaitable per attempt
        description: Human-readable name used in logs and timeout errors
        retry_on: Exception types that trigger another attempt

    Returns:
        The operation's result

    Raises:
        ProcessTimeoutError: If the final attempt timed out
        Any exception raised by the final attempt
    """
    async def attempt() -> T:
        if policy.timeout is None:
            return await operation()
        try:
            return await asyncio.wait_for(operation(), timeout=policy.timeout)
        except asyncio.TimeoutError as e:
            raise ProcessTimeoutError(description, policy.timeout) from e

    retrying = AsyncRetrying(
        stop=stop_after_attempt(max(policy.attempts, 1)),
        wait=wait_fixed(policy.wait_seconds),
        retry=retry_if_exception_type(retry_on),
        reraise=True,
    )
    async for attempt_state in retrying:
        with attempt_state:
            number = attempt_state.retry_state.attempt_number
            if number > 1:
                logger.warning(f"Retrying {description} (attempt {number}/{policy.attempts})")
            return await attempt()
    raise RuntimeError(f"{description}: retry loop exited without a result")
