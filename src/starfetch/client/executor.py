"""One HTTP attempt, classified.

:class:`Executor` sends a single GET through an :class:`httpx.Client` with the
fixed request headers and maps what comes back onto a
:data:`~starfetch.client.outcomes.FetchOutcome`:

=====================================================  ===============
Response                                               Outcome
=====================================================  ===============
200                                                    ``Success``
202 (statistics still being computed)                  ``Transient``
403 with ``X-RateLimit-Remaining: 0``                  ``RateLimited``
any other status                                       ``Permanent``
no response (DNS, connect, timeout, broken transfer)   ``Transient``
=====================================================  ===============

Successful responses are written to the response cache before they are
returned.  A cache write failure only costs the caching: the entry is still
returned, as if it had never been cached.
"""

from __future__ import annotations

import time
from typing import Callable, Optional

import httpx

from starfetch.cache import ResponseCache
from starfetch.client.outcomes import FetchOutcome, Permanent, RateLimited, Success, Transient
from starfetch.exceptions import CacheIOError
from starfetch.models import CacheEntry, FetchContext, RequestConfig, RequestIdentity
from starfetch.output import debug, warning

RATE_LIMIT_REMAINING_HEADER = "X-RateLimit-Remaining"
RATE_LIMIT_RESET_HEADER = "X-RateLimit-Reset"


class Executor:
    """Performs and classifies single GitHub API requests.

    Args:
        client: An open :class:`httpx.Client`.  The executor never closes it.
        config: Request settings; only ``user_agent`` is read here.
        clock: Source of the ``stored_at`` timestamp for cache entries.
    """

    def __init__(
        self,
        client: httpx.Client,
        config: Optional[RequestConfig] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self._client = client
        self._config = config or RequestConfig()
        self._clock = clock or time.time

    def build_headers(self, ctx: FetchContext) -> dict[str, str]:
        """Return the headers attached to every request made with *ctx*."""
        headers = {
            "User-Agent": self._config.user_agent,
            "Accept-Encoding": "gzip",
        }
        if ctx.token:
            headers["Authorization"] = f"Bearer {ctx.token}"
        if ctx.accept:
            headers["Accept"] = ctx.accept
        return headers

    def execute(
        self,
        ctx: FetchContext,
        identity: RequestIdentity,
        cache: Optional[ResponseCache] = None,
    ) -> FetchOutcome:
        """Send one request for *identity* and classify the result.

        Args:
            ctx: Per-call context (token, scope, accept override).
            identity: The request to send.
            cache: Where successful responses are stored, if anywhere.

        Returns:
            The classified outcome.  This method does not raise for HTTP or
            transport errors.
        """
        url = identity.url
        debug(f"fetching {url}...")
        try:
            response = self._client.request(
                identity.method, url, headers=self.build_headers(ctx)
            )
        except httpx.RequestError as exc:
            return Transient(f"GET {url} failed: {exc.__class__.__name__}: {exc}")

        status = response.status_code
        if status == 200:
            entry = self._to_entry(response)
            if cache is not None:
                try:
                    cache.put(ctx.scope, identity, entry)
                except CacheIOError as exc:
                    warning(f"unable to cache {url}; continuing uncached: {exc}")
            return Success(entry)
        if status == 202:
            return Transient(f"GET {url}: 202 (Accepted) HTTP response; backoff and retry")
        if status == 403:
            reset_at = _rate_limit_reset(response.headers)
            if reset_at is not None:
                return RateLimited(reset_at)
        return Permanent(status=status, diagnostic=_describe_failure(identity, response))

    def _to_entry(self, response: httpx.Response) -> CacheEntry:
        return CacheEntry(
            status_code=response.status_code,
            headers={name.lower(): value for name, value in response.headers.items()},
            body=response.text,
            stored_at=self._clock(),
        )


def _rate_limit_reset(headers: httpx.Headers) -> Optional[float]:
    """Return the quota reset time if the headers report an exhausted quota."""
    remaining = headers.get(RATE_LIMIT_REMAINING_HEADER)
    reset = headers.get(RATE_LIMIT_RESET_HEADER)
    if remaining is None or reset is None:
        return None
    try:
        if int(remaining) != 0:
            return None
        return float(int(reset))
    except ValueError:
        return None


def _describe_failure(identity: RequestIdentity, response: httpx.Response) -> str:
    """Build a diagnostic naming the request and summarising the response."""
    try:
        detail = response.json()
        if isinstance(detail, dict):
            msg = str(detail.get("message") or detail.get("error") or "")
        else:
            msg = str(detail)
    except ValueError:
        msg = response.text[:200] if response.text else ""

    prefix = f"{identity.method} {identity.url}: HTTP {response.status_code}"
    if response.reason_phrase:
        prefix = f"{prefix} {response.reason_phrase}"
    return f"{prefix}: {msg}" if msg else prefix
