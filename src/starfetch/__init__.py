"""starfetch -- cached, rate-limit-aware fetch engine for the GitHub REST API.

This package turns a logical "get this paginated resource" request into a
reliable sequence of HTTP calls: responses are cached on disk per tracked
repository, ``Link`` headers are followed page by page, and rate-limit or
transient failures are absorbed by a bounded retry loop.

Typical usage::

    from starfetch.client import Fetcher
    from starfetch.config import build_context

    ctx = build_context("cockroachdb/cockroach")
    with Fetcher() as fetcher:
        users = fetcher.fetch_all(ctx, "https://api.github.com/users/x/followers", dict)

Modules:
    models: Pydantic models shared across the package.
    config: XDG-aware configuration and fetch-context construction.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes for callers that terminate a run.
    output: stderr diagnostics with Rich support.
"""

__version__ = "0.1.0"
