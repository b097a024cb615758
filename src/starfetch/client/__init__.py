"""HTTP fetch engine for starfetch.

Composes four pieces into one "fetch this URL" operation:

* :mod:`~starfetch.client.links` -- ``Link`` header cursor extraction.
* :mod:`~starfetch.client.executor` -- one classified HTTP attempt.
* :mod:`~starfetch.client.backoff` -- retry, backoff and rate-limit waits.
* :mod:`~starfetch.client.fetcher` -- the orchestrator, :class:`Fetcher`.

Example::

    from starfetch.client import Fetcher

    with Fetcher() as fetcher:
        result = fetcher.fetch(ctx, "https://api.github.com/repos/o/r/stargazers")
"""

from starfetch.client.backoff import BackoffPolicy
from starfetch.client.executor import Executor
from starfetch.client.fetcher import Fetcher
from starfetch.client.links import parse_link_header, parse_next_link
from starfetch.client.outcomes import (
    FetchOutcome,
    FetchResult,
    Permanent,
    RateLimited,
    Success,
    Transient,
)

__all__ = [
    "BackoffPolicy",
    "Executor",
    "FetchOutcome",
    "FetchResult",
    "Fetcher",
    "Permanent",
    "RateLimited",
    "Success",
    "Transient",
    "parse_link_header",
    "parse_next_link",
]
