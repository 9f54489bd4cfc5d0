# src/llm/retry.py — v3
"""Timeout-bounded capability calls with classify-then-retry logic.

Auth and safety failures abort at once, quota/server/network failures are
retried with exponential backoff, everything else is re-raised unchanged.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Awaitable, Callable

from songsmith.core.errors import ClassifiedError, ErrorKind, classify_error, is_fatal, is_transient

if TYPE_CHECKING:
    from songsmith.config.settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """Retry budget and per-attempt deadline for one stage."""

    retries: int = 2
    initial_delay_s: float = 2.0
    backoff_factor: float = 2.0
    timeout_s: float = 30.0

    @classmethod
    def from_settings(cls, settings: Settings, streaming: bool = False) -> RetryPolicy:
        return cls(
            retries=settings.retry_max_retries,
            initial_delay_s=settings.retry_initial_delay_s,
            backoff_factor=settings.retry_backoff_factor,
            timeout_s=settings.draft_timeout_s if streaming else settings.call_timeout_s,
        )


DEFAULT_RETRY_POLICY = RetryPolicy()


async def with_timeout(
    fn: Callable[..., Awaitable[Any]],
    timeout_s: float,
    *args: Any,
    **kwargs: Any,
) -> Any:
    """Race ``fn`` against a deadline.

    Raises:
        ClassifiedError: NETWORK kind when the deadline passes first.
    """
    try:
        async with asyncio.timeout(timeout_s):
            return await fn(*args, **kwargs)
    except TimeoutError as exc:
        raise ClassifiedError(
            ErrorKind.NETWORK,
            f"Request timed out after {timeout_s:g}s",
            cause=exc,
        ) from exc


async def with_retry(
    fn: Callable[..., Awaitable[Any]],
    *args: Any,
    stage: str = "unknown",
    policy: RetryPolicy | None = None,
    on_attempt: Callable[[], None] | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    **kwargs: Any,
) -> Any:
    """Execute an async capability call with timeout and retry.

    Args:
        fn: Coroutine function performing one attempt.
        stage: Stage name, for logging.
        policy: Retry budget and deadline (defaults to 2 retries, 2s, 30s).
        on_attempt: Called before every attempt, e.g. to record quota usage.
        sleep: Awaitable sleep used between attempts.

    Raises:
        Exception: The last attempt's error, unchanged.
    """
    policy = policy or DEFAULT_RETRY_POLICY
    retries_left = policy.retries
    delay = policy.initial_delay_s
    attempt = 0

    while True:
        attempt += 1
        if on_attempt is not None:
            on_attempt()
        try:
            result = await with_timeout(fn, policy.timeout_s, *args, **kwargs)
        except Exception as e:
            kind = classify_error(e).kind
            if is_fatal(kind):
                logger.error(
                    "Stage '%s' — fatal %s error on attempt %d, not retrying",
                    stage, kind.value, attempt,
                )
                raise
            if not is_transient(kind):
                logger.error(
                    "Stage '%s' — non-transient %s error on attempt %d, not retrying",
                    stage, kind.value, attempt,
                )
                raise
            if retries_left <= 0:
                logger.error(
                    "Stage '%s' — %s error, retries exhausted after %d attempts",
                    stage, kind.value, attempt,
                )
                raise
            logger.warning(
                "Stage '%s' — %s (attempt %d/%d), retrying in %.1fs",
                stage, kind.value, attempt, policy.retries + 1, delay,
            )
            await sleep(delay)
            delay *= policy.backoff_factor
            retries_left -= 1
            continue

        if attempt > 1:
            logger.info("Stage '%s' succeeded on attempt %d", stage, attempt)
        return result
