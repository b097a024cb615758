"""Retry, backoff and rate-limit policy for a single logical fetch.

:class:`BackoffPolicy` owns every wait the engine performs.  Given a
classified :data:`~starfetch.client.outcomes.FetchOutcome` it decides whether
to try again and how long to sleep first:

* :class:`~starfetch.client.outcomes.RateLimited` -- sleep until the quota
  reset time plus one second of padding for clock skew.  The wait is
  unbounded but still consumes one attempt, so an endpoint that is both
  rate-limited and flaky cannot loop forever.
* :class:`~starfetch.client.outcomes.Transient` -- exponential backoff from
  50 ms, doubling per attempt and capped at 1 s, without jitter.
* :class:`~starfetch.client.outcomes.Permanent` -- stop immediately.

At most ``max_attempts`` (10) attempts are made per logical fetch.  The
remote API shares one quota per access token, so one policy instance should
serve every fetch made with that token.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Optional

from starfetch.client.outcomes import (
    FetchOutcome,
    Permanent,
    RateLimited,
    Success,
    Transient,
)
from starfetch.models import BackoffConfig
from starfetch.output import warning


class BackoffPolicy:
    """Bounded retry loop with exponential backoff and rate-limit waits.

    Args:
        max_attempts: Attempt budget per logical fetch.
        base_delay: First transient backoff, in seconds.
        max_delay: Cap for transient backoff, in seconds.
        rate_limit_padding: Seconds added to a rate-limit reset time.
        sleep: Blocking sleep function (injectable for tests).
        clock: Returns the current Unix time in seconds (injectable for tests).
    """

    def __init__(
        self,
        max_attempts: int = 10,
        base_delay: float = 0.05,
        max_delay: float = 1.0,
        rate_limit_padding: float = 1.0,
        sleep: Optional[Callable[[float], None]] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.rate_limit_padding = rate_limit_padding
        self._sleep = sleep or time.sleep
        self._clock = clock or time.time

    @classmethod
    def from_config(cls, config: BackoffConfig, **kwargs: Any) -> BackoffPolicy:
        """Build a policy from :class:`~starfetch.models.BackoffConfig`.

        Extra keyword arguments (``sleep``, ``clock``) are passed through.
        """
        return cls(
            max_attempts=config.max_attempts,
            base_delay=config.base_delay_ms / 1000,
            max_delay=config.max_delay_ms / 1000,
            rate_limit_padding=config.rate_limit_padding_seconds,
            **kwargs,
        )

    def now(self) -> float:
        return self._clock()

    def delay_for(self, outcome: FetchOutcome, attempt: int) -> Optional[float]:
        """Return the seconds to wait before retrying, or ``None`` to stop.

        Args:
            outcome: The classified result of the attempt that just finished.
            attempt: Zero-based index of that attempt.
        """
        if isinstance(outcome, Success):
            return None
        if isinstance(outcome, Permanent):
            return None
        if isinstance(outcome, RateLimited):
            return max(0.0, outcome.reset_at + self.rate_limit_padding - self._clock())
        if isinstance(outcome, Transient):
            return min(self.base_delay * (2 ** attempt), self.max_delay)
        raise TypeError(f"unknown fetch outcome: {outcome!r}")

    def run(self, url: str, attempt_fn: Callable[[], FetchOutcome]) -> tuple[FetchOutcome, int]:
        """Call *attempt_fn* until success, a permanent failure, or budget exhaustion.

        No sleep follows the final attempt.

        Args:
            url: The URL being fetched, for diagnostics.
            attempt_fn: Performs one network attempt and classifies it.

        Returns:
            ``(outcome, attempts)`` -- the last outcome and the number of
            attempts made.
        """
        outcome: FetchOutcome = Transient("no attempt made")
        for attempt in range(self.max_attempts):
            outcome = attempt_fn()
            delay = self.delay_for(outcome, attempt)
            if delay is None:
                return outcome, attempt + 1
            if attempt + 1 >= self.max_attempts:
                break
            if isinstance(outcome, RateLimited):
                warning(f"{outcome.describe()} (in {delay:.0f}s); waiting to fetch {url}")
            else:
                warning(f"retrying {url} in {delay * 1000:.0f}ms: {outcome.describe()}")
            self._sleep(delay)
        return outcome, self.max_attempts
