"""Classified results of a single network attempt, and of a whole fetch.

:data:`FetchOutcome` is a closed union of four frozen dataclasses:

* :class:`Success` -- HTTP 200; carries the stored :class:`~starfetch.models.CacheEntry`.
* :class:`RateLimited` -- HTTP 403 with the quota exhausted; carries the reset time.
* :class:`Transient` -- HTTP 202 or a transport failure; worth retrying.
* :class:`Permanent` -- any other non-2xx status; never retried.

:class:`FetchResult` is what :meth:`~starfetch.client.fetcher.Fetcher.fetch`
returns to the traversal layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Optional, Union

from starfetch.models import CacheEntry


@dataclass(frozen=True)
class Success:
    entry: CacheEntry


@dataclass(frozen=True)
class RateLimited:
    """The access token's quota is used up until ``reset_at`` (Unix seconds)."""

    reset_at: float

    def describe(self) -> str:
        reset = datetime.fromtimestamp(self.reset_at).strftime("%Y-%m-%d %H:%M:%S")
        return f"rate limit for this access token has been exceeded; resets at {reset}"


@dataclass(frozen=True)
class Transient:
    cause: str

    def describe(self) -> str:
        return self.cause


@dataclass(frozen=True)
class Permanent:
    status: int
    diagnostic: str

    def describe(self) -> str:
        return self.diagnostic


FetchOutcome = Union[Success, RateLimited, Transient, Permanent]


@dataclass(frozen=True)
class FetchResult:
    """Result of one logical fetch.

    Attributes:
        value: The body decoded into the requested destination type, or
            ``None`` when the fetch soft-failed.
        next_url: Cursor for the next page; ``None`` on the last page, for
            unpaginated endpoints, and on soft failure.
        from_cache: Whether the body came from the response cache.
        attempts: Network attempts made (0 on a cache hit).
        failure: The last non-success outcome when the fetch soft-failed
            (a :class:`Permanent` error or an exhausted attempt budget).
    """

    value: Any = None
    next_url: Optional[str] = None
    from_cache: bool = False
    attempts: int = 0
    failure: Optional[FetchOutcome] = None

    @property
    def ok(self) -> bool:
        return self.failure is None
