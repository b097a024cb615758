"""Disk-based response cache, namespaced by tracked repository.

Uses :mod:`diskcache` to persist raw GitHub API responses.  Each repository
scope (``owner/repo``) gets its own cache directory::

    <cache_root>/<owner>/<repo>/responses/

so that the cached responses for one tracked repository can be cleared
without touching any other.  Keys are the readable
:attr:`~starfetch.models.RequestIdentity.cache_key` strings and values are
stored uncompressed as JSON, which keeps entries inspectable with
:meth:`ResponseCache.keys` and :meth:`ResponseCache.stats`.

Every storage failure is raised as :class:`~starfetch.exceptions.CacheIOError`.
Entries never expire unless :attr:`~starfetch.models.CacheConfig.ttl_seconds`
is set.
"""

from __future__ import annotations

import shutil
import sqlite3
from pathlib import Path
from typing import Any, Optional

import diskcache
from pydantic import ValidationError

from starfetch.exceptions import CacheIOError, ConfigError
from starfetch.models import CacheConfig, CacheEntry, RequestIdentity, scope_segments

_STORAGE_ERRORS = (OSError, sqlite3.Error, diskcache.Timeout)


class ResponseCache:
    """Disk-backed store of raw responses keyed by request identity.

    Holds at most one entry per identity; :meth:`put` overwrites.  The
    per-scope :class:`diskcache.Cache` instances are opened lazily and kept
    until :meth:`close` or :meth:`clear_scope`.

    Args:
        cache_root: Root directory shared by all scopes.
        config: Cache configuration (optional ``ttl_seconds``).

    Example::

        cache = ResponseCache("/tmp/starfetch", CacheConfig())
        identity = RequestIdentity(url="https://api.github.com/repos/o/r/stargazers")
        cache.put("o/r", identity, CacheEntry(status_code=200, body="[]"))
        hit = cache.get("o/r", identity)
    """

    def __init__(self, cache_root: str | Path, config: Optional[CacheConfig] = None) -> None:
        self._root = Path(cache_root)
        self._config = config or CacheConfig()
        self._stores: dict[tuple[str, ...], diskcache.Cache] = {}

    @property
    def root(self) -> Path:
        return self._root

    def scope_dir(self, scope: str) -> Path:
        """Return the directory holding the responses cached for *scope*."""
        return self._root.joinpath(*self._segments(scope)) / "responses"

    def get(self, scope: str, identity: RequestIdentity) -> Optional[CacheEntry]:
        """Look up the cached response for *identity*.

        A stored value that no longer validates as a :class:`CacheEntry` is
        treated as a miss; the orchestrator will refetch and overwrite it.

        Returns:
            The entry, or ``None`` on a miss.

        Raises:
            CacheIOError: If the store cannot be read.
        """
        key = identity.cache_key
        try:
            raw = self._store(scope).get(key)
        except _STORAGE_ERRORS as exc:
            raise CacheIOError(f"cache read {key!r} in {scope}: {exc}") from exc
        if raw is None:
            return None
        try:
            return CacheEntry.model_validate(raw)
        except ValidationError:
            return None

    def put(self, scope: str, identity: RequestIdentity, entry: CacheEntry) -> None:
        """Store *entry* for *identity*, replacing any previous entry.

        Raises:
            CacheIOError: If the store cannot be written.
        """
        key = identity.cache_key
        try:
            self._store(scope).set(
                key, entry.model_dump(mode="json"), expire=self._config.ttl_seconds
            )
        except _STORAGE_ERRORS as exc:
            raise CacheIOError(f"cache write {key!r} in {scope}: {exc}") from exc

    def invalidate(self, scope: str, identity: RequestIdentity) -> None:
        """Remove the entry for *identity*.  Missing entries are ignored."""
        key = identity.cache_key
        try:
            self._store(scope).delete(key)
        except _STORAGE_ERRORS as exc:
            raise CacheIOError(f"cache invalidate {key!r} in {scope}: {exc}") from exc

    def clear_scope(self, scope: str) -> None:
        """Delete every cached response for the repository *scope*.

        Other scopes under the same root are left untouched.
        """
        segments = self._segments(scope)
        store = self._stores.pop(segments, None)
        if store is not None:
            store.close()
        path = self.scope_dir(scope)
        if not path.exists():
            return
        try:
            shutil.rmtree(path)
        except OSError as exc:
            raise CacheIOError(f"cache clear {scope} at {path}: {exc}") from exc

    def keys(self, scope: str) -> list[str]:
        """Return the cache keys stored for *scope*, sorted."""
        try:
            return sorted(self._store(scope).iterkeys())
        except _STORAGE_ERRORS as exc:
            raise CacheIOError(f"cache list {scope}: {exc}") from exc

    def stats(self, scope: str) -> dict[str, Any]:
        """Return ``size``, ``directory`` and ``ttl_seconds`` for *scope*."""
        try:
            size = len(self._store(scope))
        except _STORAGE_ERRORS as exc:
            raise CacheIOError(f"cache stats {scope}: {exc}") from exc
        return {
            "size": size,
            "directory": str(self.scope_dir(scope)),
            "ttl_seconds": self._config.ttl_seconds,
        }

    def close(self) -> None:
        """Close every open per-scope store."""
        for store in self._stores.values():
            store.close()
        self._stores.clear()

    def _segments(self, scope: str) -> tuple[str, ...]:
        try:
            return scope_segments(scope)
        except ValueError as exc:
            raise ConfigError(str(exc)) from exc

    def _store(self, scope: str) -> diskcache.Cache:
        segments = self._segments(scope)
        store = self._stores.get(segments)
        if store is None:
            store = diskcache.Cache(
                str(self.scope_dir(scope)),
                disk=diskcache.JSONDisk,
                disk_compress_level=0,
            )
            self._stores[segments] = store
        return store
