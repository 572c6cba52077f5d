"""Bounded polling for cloud resources that settle asynchronously."""
import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from tenacity import AsyncRetrying, RetryError, retry_if_result, stop_after_attempt, wait_incrementing

from kubeforge.exceptions import TerminalStatusError, WaitTimeoutError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PollPolicy:
    """Attempt budget and sleep schedule for one kind of wait."""

    attempts: int
    start: float
    increment: float

    @classmethod
    def from_settings(cls, settings, prefix: str) -> "PollPolicy":
        """Read ``<prefix>_ATTEMPTS``, ``<prefix>_START_SECONDS`` and ``<prefix>_INCREMENT_SECONDS``."""
        return cls(
            attempts=getattr(settings, f"{prefix}_ATTEMPTS"),
            start=getattr(settings, f"{prefix}_START_SECONDS"),
            increment=getattr(settings, f"{prefix}_INCREMENT_SECONDS"),
        )


async def wait_until_ready(
    fetch: Callable[[], Awaitable[Any]],
    is_ready: Callable[[Any], bool],
    policy: PollPolicy,
    description: str,
    is_failed: Optional[Callable[[Any], bool]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> Any:
    """Poll ``fetch`` until ``is_ready`` accepts its result.

    Sleeps ``start``, then ``start + increment``, ... between attempts and
    gives up after ``policy.attempts`` fetches with ``WaitTimeoutError``.
    A status matching ``is_failed`` raises ``TerminalStatusError`` straight
    away, and an exception raised by ``fetch`` is propagated unchanged.
    Returns the status that satisfied ``is_ready``.
    """
    last = {}

    async def check() -> bool:
        status = await fetch()
        last["status"] = status
        if is_failed is not None and is_failed(status):
            raise TerminalStatusError(description, str(status))
        return bool(is_ready(status))

    retrying = AsyncRetrying(
        stop=stop_after_attempt(policy.attempts),
        wait=wait_incrementing(start=policy.start, increment=policy.increment),
        retry=retry_if_result(lambda ready: ready is False),
        sleep=sleep,
        before_sleep=lambda state: logger.debug(
            f"Waiting for {description} (attempt {state.attempt_number}/{policy.attempts})"
        ),
    )
    try:
        await retrying(check)
    except RetryError:
        logger.warning(f"Gave up waiting for {description} after {policy.attempts} attempts")
        raise WaitTimeoutError(description, policy.attempts)
    return last["status"]
