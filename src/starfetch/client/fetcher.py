"""Fetch orchestrator -- the public entry point of the engine.

:class:`Fetcher` turns "get this (possibly paginated) resource" into a
cached, retried, rate-limit-aware sequence of requests:

1. Build the :class:`~starfetch.models.RequestIdentity` for the URL.
2. Consult the :class:`~starfetch.cache.ResponseCache` for the context's
   repository scope.  A hit is used as-is unless it is the last page of a
   collection and ``revalidate_last_page`` is set: a final page can grow
   between runs, so it is fetched again.
3. On a miss, run the :class:`~starfetch.client.executor.Executor` under the
   :class:`~starfetch.client.backoff.BackoffPolicy` until success, a
   permanent failure, or the attempt budget runs out.
4. Extract the next-page cursor from the ``Link`` header and decode the body
   into the caller's destination type with :class:`pydantic.TypeAdapter`.
5. A body that does not decode is treated as a corrupt cache entry: it is
   invalidated and the whole fetch is retried once.  A second failure
   invalidates the refetched entry too and raises
   :class:`~starfetch.exceptions.DecodeError`.

Permanent HTTP errors and budget exhaustion are *soft* failures: they are
logged and the result carries no value and no cursor, so one unreachable
endpoint does not abort a traversal that touches thousands of URLs.  The
failure is still reported on :attr:`FetchResult.failure
<starfetch.client.outcomes.FetchResult.failure>`.

See Also:
    :func:`starfetch.config.build_context` for building a
    :class:`~starfetch.models.FetchContext`.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Iterator, Optional

import httpx
from pydantic import TypeAdapter, ValidationError

from starfetch.cache import ResponseCache
from starfetch.client.backoff import BackoffPolicy
from starfetch.client.executor import Executor
from starfetch.client.links import parse_next_link
from starfetch.client.outcomes import FetchOutcome, FetchResult, Permanent, Success
from starfetch.exceptions import DecodeError
from starfetch.models import CacheEntry, FetchContext, GlobalConfig, RequestIdentity
from starfetch.output import debug, success, warning


class Fetcher:
    """Cached, paginating, retrying GET client for JSON APIs.

    Fetching requires the context manager, which opens and closes the
    underlying :class:`httpx.Client` and the cache stores;
    :meth:`clear_scope` and :meth:`cache_stats` also work without it.  Use
    one instance per access token: its single policy serialises every
    request made against that token's quota.

    Args:
        config: Global configuration (request, cache and backoff settings).
        policy: Retry policy; built from ``config.backoff`` when omitted.
        transport: Optional :mod:`httpx` transport, e.g. a
            :class:`httpx.MockTransport` in tests.

    Example::

        ctx = build_context("cockroachdb/cockroach")
        with Fetcher() as fetcher:
            result = fetcher.fetch(ctx, url, list[dict])
            while result.next_url:
                result = fetcher.fetch(ctx, result.next_url, list[dict])
    """

    def __init__(
        self,
        config: Optional[GlobalConfig] = None,
        policy: Optional[BackoffPolicy] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._config = config or GlobalConfig()
        self._policy = policy or BackoffPolicy.from_config(self._config.backoff)
        self._transport = transport
        self._client: Optional[httpx.Client] = None
        self._executor: Optional[Executor] = None
        self._caches: dict[Path, ResponseCache] = {}

    # ------------------------------------------------------------------ #
    # Context manager
    # ------------------------------------------------------------------ #

    def __enter__(self) -> Fetcher:
        request = self._config.request
        self._client = httpx.Client(
            timeout=request.timeout,
            verify=request.verify_ssl,
            follow_redirects=True,
            transport=self._transport,
        )
        self._executor = Executor(self._client, request, clock=self._policy.now)
        return self

    def __exit__(self, *args: object) -> None:
        if self._client:
            self._client.close()
            self._client = None
            self._executor = None
        for cache in self._caches.values():
            cache.close()
        self._caches.clear()

    @property
    def policy(self) -> BackoffPolicy:
        return self._policy

    # ------------------------------------------------------------------ #
    # Fetching
    # ------------------------------------------------------------------ #

    def fetch(
        self,
        ctx: FetchContext,
        url: str,
        destination: Any = Any,
        revalidate_last_page: bool = False,
    ) -> FetchResult:
        """Fetch one page of *url*, from the cache when possible.

        Args:
            ctx: Per-call context (token, cache root, scope, accept override).
            url: Absolute URL of the page to fetch.
            destination: Type to decode the JSON body into -- a pydantic
                model, ``list[Model]``, ``dict``, or ``Any`` for plain JSON.
            revalidate_last_page: Refetch a cached page that has no next
                cursor.  Use for frequently growing top-level collections.

        Returns:
            A :class:`~starfetch.client.outcomes.FetchResult`.  On a soft
            failure ``value`` and ``next_url`` are ``None`` and ``failure``
            holds the last outcome.

        Raises:
            DecodeError: If the body fails to decode after one refetch.
            CacheIOError: If the response cache cannot be read or updated.
        """
        return self._fetch(ctx, url, destination, revalidate_last_page, retried=False)

    def iter_pages(
        self,
        ctx: FetchContext,
        url: str,
        item_type: Any = Any,
        revalidate_last_page: bool = False,
        max_items: Optional[int] = None,
    ) -> Iterator[Any]:
        """Yield the items of a paginated collection, following cursors.

        Each page is decoded as ``list[item_type]``.  Iteration stops after
        the last page, after a soft failure, or once *max_items* items have
        been yielded.
        """
        if max_items is not None and max_items <= 0:
            return
        yielded = 0
        next_url: Optional[str] = url
        while next_url:
            result = self.fetch(ctx, next_url, list[item_type], revalidate_last_page)
            for item in result.value or []:
                yield item
                yielded += 1
                if max_items is not None and yielded >= max_items:
                    return
            next_url = result.next_url

    def fetch_all(
        self,
        ctx: FetchContext,
        url: str,
        item_type: Any = Any,
        revalidate_last_page: bool = False,
        max_items: Optional[int] = None,
    ) -> list[Any]:
        """Return every item of a paginated collection as one list."""
        return list(self.iter_pages(ctx, url, item_type, revalidate_last_page, max_items))

    # ------------------------------------------------------------------ #
    # Cache management
    # ------------------------------------------------------------------ #

    def clear_scope(self, cache_root: str | Path, scope: str) -> None:
        """Delete every cached response for the repository *scope*.

        Works on an entered or a bare :class:`Fetcher`; outside the context
        manager the cache is opened for this call only.
        """
        cache, owned = self._management_cache(Path(cache_root))
        try:
            cache.clear_scope(scope)
        finally:
            if owned:
                cache.close()
        success(f"cleared cached responses for {scope}")

    def cache_stats(self, cache_root: str | Path, scope: str) -> dict[str, Any]:
        """Return :meth:`ResponseCache.stats <starfetch.cache.ResponseCache.stats>` for *scope*."""
        cache, owned = self._management_cache(Path(cache_root))
        try:
            return cache.stats(scope)
        finally:
            if owned:
                cache.close()

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _fetch(
        self,
        ctx: FetchContext,
        url: str,
        destination: Any,
        revalidate_last_page: bool,
        retried: bool,
    ) -> FetchResult:
        identity = RequestIdentity.for_request(ctx, url)
        cache = self._cache_for(ctx.cache_root)

        entry: Optional[CacheEntry] = cache.get(ctx.scope, identity)
        from_cache = entry is not None
        if entry is not None and revalidate_last_page and not parse_next_link(entry.header("link")):
            debug(f"revalidating last page {url}")
            entry = None
            from_cache = False

        attempts = 0
        if entry is None:
            outcome, attempts = self._fetch_from_network(ctx, identity, cache)
            if not isinstance(outcome, Success):
                if isinstance(outcome, Permanent):
                    warning(f"unable to fetch {url}: {outcome.describe()}")
                else:
                    warning(
                        f"unable to fetch {url} after {attempts} attempts: {outcome.describe()}"
                    )
                return FetchResult(attempts=attempts, failure=outcome)
            entry = outcome.entry

        next_url = parse_next_link(entry.header("link"))
        try:
            value = TypeAdapter(destination).validate_json(entry.body)
        except ValidationError as exc:
            if retried:
                cache.invalidate(ctx.scope, identity)
                raise DecodeError(f"decode {url}: {exc}") from exc
            warning(f"cache entry for {url} corrupted; removing and refetching")
            cache.invalidate(ctx.scope, identity)
            return self._fetch(ctx, url, destination, revalidate_last_page, retried=True)

        return FetchResult(
            value=value,
            next_url=next_url,
            from_cache=from_cache,
            attempts=attempts,
        )

    def _fetch_from_network(
        self,
        ctx: FetchContext,
        identity: RequestIdentity,
        cache: ResponseCache,
    ) -> tuple[FetchOutcome, int]:
        assert self._executor is not None, "Fetcher not initialised -- use as context manager"
        executor = self._executor
        return self._policy.run(identity.url, lambda: executor.execute(ctx, identity, cache))

    def _management_cache(self, cache_root: Path) -> tuple[ResponseCache, bool]:
        """Return a cache for *cache_root* and whether the caller must close it."""
        if self._client is None:
            return ResponseCache(cache_root, self._config.cache), True
        return self._cache_for(cache_root), False

    def _cache_for(self, cache_root: Path) -> ResponseCache:
        cache = self._caches.get(cache_root)
        if cache is None:
            cache = ResponseCache(cache_root, self._config.cache)
            self._caches[cache_root] = cache
        return cache
