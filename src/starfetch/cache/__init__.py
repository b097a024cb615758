"""Disk-based response caching for starfetch.

This package provides :class:`ResponseCache`, which stores raw GitHub API
responses on disk using :mod:`diskcache`, one store per tracked repository.
Entries are keyed by request identity (URL plus ``Accept`` override).

The cache is written by :class:`~starfetch.client.executor.Executor` and read
and invalidated by :class:`~starfetch.client.fetcher.Fetcher`.
:meth:`ResponseCache.clear_scope` is the primitive behind a "clear cache"
command.
"""

from starfetch.cache.cache import ResponseCache

__all__ = ["ResponseCache"]
