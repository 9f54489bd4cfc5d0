# src/llm/rate_limiter.py — v2
"""Sliding-window request budgets shared by every capability call.

Two tiers are enforced: a global bucket shared by all capabilities and one
bucket per capability. A call is admitted only when both buckets admit it.
Every attempt is recorded, including attempts that later fail, so retries
and failures keep consuming quota.
"""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable

from songsmith.core.errors import ClassifiedError, ErrorKind

if TYPE_CHECKING:
    from songsmith.config.settings import Settings

logger = logging.getLogger(__name__)

NEAR_LIMIT_RATIO = 0.2
GLOBAL_BUCKET = "global"
DEFAULT_BUCKET = "default"


def _monotonic_ms() -> float:
    return time.monotonic() * 1000.0


@dataclass(frozen=True)
class RateLimitStatus:
    """Read-only view of a bucket, for display."""

    can_request: bool
    remaining: int
    reset_in_ms: int
    is_near_limit: bool


class RateLimitExceeded(ClassifiedError):
    """Raised before any network attempt when a bucket refuses a call."""

    def __init__(self, bucket: str, reset_in_ms: int) -> None:
        seconds = math.ceil(reset_in_ms / 1000)
        super().__init__(
            ErrorKind.QUOTA,
            f"Rate limit exceeded. Please wait {seconds} seconds "
            "before making another request.",
        )
        self.bucket = bucket
        self.reset_in_ms = reset_in_ms


class RateLimiter:
    """A single sliding-window bucket.

    Args:
        max_requests: Admission threshold within one window.
        window_ms: Window length in milliseconds.
        clock: Millisecond clock (monotonic by default).
    """

    def __init__(
        self,
        max_requests: int,
        window_ms: int,
        clock: Callable[[], float] = _monotonic_ms,
    ) -> None:
        if max_requests <= 0:
            raise ValueError("max_requests must be > 0")
        if window_ms <= 0:
            raise ValueError("window_ms must be > 0")
        self.max_requests = max_requests
        self.window_ms = window_ms
        self._clock = clock
        self._timestamps: list[float] = []
        self._lock = threading.Lock()

    @property
    def timestamps(self) -> list[float]:
        with self._lock:
            return list(self._timestamps)

    def _prune(self, now: float) -> None:
        self._timestamps = [t for t in self._timestamps if now - t < self.window_ms]

    def can_request(self) -> bool:
        with self._lock:
            self._prune(self._clock())
            return len(self._timestamps) < self.max_requests

    def record_request(self) -> None:
        with self._lock:
            self._timestamps.append(self._clock())

    def remaining(self) -> int:
        with self._lock:
            return self._remaining(self._clock())

    def reset_in_ms(self) -> int:
        """Milliseconds until the oldest live timestamp leaves the window."""
        with self._lock:
            return self._reset_in_ms(self._clock())

    def reset(self) -> None:
        with self._lock:
            self._timestamps.clear()

    def status(self) -> RateLimitStatus:
        """Remaining count and reset time read from one clock sample."""
        with self._lock:
            now = self._clock()
            remaining = self._remaining(now)
            reset_in_ms = self._reset_in_ms(now)
        return RateLimitStatus(
            can_request=remaining > 0,
            remaining=remaining,
            reset_in_ms=reset_in_ms,
            is_near_limit=remaining <= self.max_requests * NEAR_LIMIT_RATIO,
        )

    # Callers hold self._lock.

    def _remaining(self, now: float) -> int:
        self._prune(now)
        return max(0, self.max_requests - len(self._timestamps))

    def _reset_in_ms(self, now: float) -> int:
        self._prune(now)
        if not self._timestamps:
            return 0
        return max(0, math.ceil(self.window_ms - (now - self._timestamps[0])))


class TieredRateLimiter:
    """Global bucket plus one bucket per capability.

    Capabilities without a dedicated bucket share the ``default`` bucket.
    """

    def __init__(
        self,
        global_bucket: RateLimiter,
        buckets: dict[str, RateLimiter],
    ) -> None:
        if DEFAULT_BUCKET not in buckets:
            raise ValueError("A 'default' bucket is required")
        self._global = global_bucket
        self._buckets = dict(buckets)

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        clock: Callable[[], float] = _monotonic_ms,
    ) -> TieredRateLimiter:
        window = settings.rate_limit_window_ms
        budgets = {
            DEFAULT_BUCKET: settings.rate_limit_default_max,
            "chat": settings.rate_limit_chat_max,
            "research": settings.rate_limit_research_max,
            "draft": settings.rate_limit_draft_max,
        }
        return cls(
            global_bucket=RateLimiter(settings.rate_limit_global_max, window, clock),
            buckets={
                name: RateLimiter(max_requests, window, clock)
                for name, max_requests in budgets.items()
            },
        )

    def bucket(self, capability: str) -> RateLimiter:
        if capability == GLOBAL_BUCKET:
            return self._global
        return self._buckets.get(capability, self._buckets[DEFAULT_BUCKET])

    def admit(self, capability: str) -> None:
        """Reject the call before any network attempt if either bucket refuses.

        Raises:
            RateLimitExceeded: With the longer of the two reset times.
        """
        local = self.bucket(capability)
        global_status = self._global.status()
        local_status = local.status()

        if not (global_status.can_request and local_status.can_request):
            refused = [
                (name, status.reset_in_ms)
                for name, status in (
                    (GLOBAL_BUCKET, global_status),
                    (capability, local_status),
                )
                if not status.can_request
            ]
            reset_in_ms = max(global_status.reset_in_ms, local_status.reset_in_ms)
            bucket_name = refused[0][0] if len(refused) == 1 else GLOBAL_BUCKET
            logger.warning(
                "Rate limit refused '%s' (bucket=%s), resets in %dms",
                capability, bucket_name, reset_in_ms,
            )
            raise RateLimitExceeded(bucket_name, reset_in_ms)

        if global_status.is_near_limit or local_status.is_near_limit:
            logger.warning(
                "Approaching rate limit for '%s': %d global / %d local remaining",
                capability, global_status.remaining, local_status.remaining,
            )

    def record(self, capability: str) -> None:
        self._global.record_request()
        self.bucket(capability).record_request()

    def status(self, capability: str) -> RateLimitStatus:
        return self.bucket(capability).status()

    def status_all(self) -> dict[str, RateLimitStatus]:
        result = {GLOBAL_BUCKET: self._global.status()}
        result.update({name: b.status() for name, b in sorted(self._buckets.items())})
        return result
