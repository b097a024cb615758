"""Canonical Pydantic models shared across all starfetch modules.

The models fall into two groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`CacheConfig`, :class:`RequestConfig`, :class:`BackoffConfig`,
    and :class:`GlobalConfig`.

**Fetch models** -- passed between the orchestrator, executor and cache:
    :class:`FetchContext`, :class:`RequestIdentity`, and :class:`CacheEntry`.
    These are frozen; a call site that needs a different ``Accept`` header
    builds a new context instead of mutating a shared one.
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator

from starfetch import __version__


DEFAULT_USER_AGENT = f"starfetch/{__version__}"


def scope_segments(scope: str) -> tuple[str, ...]:
    """Split a repository scope (``owner/repo``) into path segments.

    Raises:
        ValueError: If the scope is empty or contains empty, ``.`` or ``..``
            segments, which would escape the cache root.
    """
    segments = tuple(scope.strip("/").split("/")) if scope else ()
    if not segments or any(seg in ("", ".", "..") for seg in segments):
        raise ValueError(f"invalid repository scope {scope!r}; expected :owner/:repo")
    return segments


# --- Configuration ---


class CacheConfig(BaseModel):
    """Response cache settings stored in :class:`GlobalConfig`."""

    root: Optional[str] = Field(
        default=None, description="Cache root directory (defaults to the XDG cache dir)"
    )
    ttl_seconds: Optional[int] = Field(
        default=None, description="Expire cached responses after this many seconds"
    )


class RequestConfig(BaseModel):
    """HTTP settings applied to every request the executor sends."""

    timeout: int = Field(default=30, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    user_agent: str = Field(default=DEFAULT_USER_AGENT)


class BackoffConfig(BaseModel):
    """Retry budget and backoff curve for a single logical fetch."""

    max_attempts: int = Field(default=10, ge=1)
    base_delay_ms: int = Field(default=50, ge=0)
    max_delay_ms: int = Field(default=1000, ge=0)
    rate_limit_padding_seconds: float = Field(
        default=1.0, ge=0, description="Added to the rate-limit reset time for clock skew"
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/starfetch/config.json``.

    Loaded and saved by :func:`~starfetch.config.load_global_config` and
    :func:`~starfetch.config.save_global_config`.  See
    :func:`~starfetch.config.resolve_config` for the precedence chain.
    """

    token_source: str = Field(
        default="env:GITHUB_TOKEN",
        description="Credential source for the access token: env:VAR or file:/path",
    )
    cache: CacheConfig = Field(default_factory=CacheConfig)
    request: RequestConfig = Field(default_factory=RequestConfig)
    backoff: BackoffConfig = Field(default_factory=BackoffConfig)


# --- Fetch models ---


class FetchContext(BaseModel):
    """Per-call fetch configuration.

    Carries the access token, the cache root, the tracked repository whose
    cache namespace the responses belong to, and an optional content
    negotiation override (e.g. ``application/vnd.github.v3.star+json`` to
    receive star timestamps).

    Example::

        ctx = FetchContext(token="...", cache_root=Path("cache"), scope="octo/hello")
        star_ctx = ctx.with_accept("application/vnd.github.v3.star+json")
    """

    model_config = ConfigDict(frozen=True)

    token: str = ""
    cache_root: Path
    scope: str = Field(description="Tracked repository as :owner/:repo")
    accept: Optional[str] = None

    @field_validator("scope")
    @classmethod
    def _check_scope(cls, value: str) -> str:
        scope_segments(value)
        return value.strip("/")

    def with_accept(self, accept: Optional[str]) -> FetchContext:
        """Return a copy of this context with a different ``Accept`` override."""
        return self.model_copy(update={"accept": accept})


class RequestIdentity(BaseModel):
    """The parts of a request that select the returned representation.

    Two requests with equal identities share one cache entry.
    """

    model_config = ConfigDict(frozen=True)

    method: str = "GET"
    url: str
    accept: Optional[str] = None

    @classmethod
    def for_request(cls, ctx: FetchContext, url: str) -> RequestIdentity:
        return cls(url=url, accept=ctx.accept)

    @property
    def cache_key(self) -> str:
        """Human-readable key: method, scheme-less URL, and accept override."""
        parts = urlsplit(self.url)
        location = f"{parts.netloc}{parts.path}"
        if parts.query:
            location = f"{location}?{parts.query}"
        key = f"{self.method.upper()} {location}"
        if self.accept:
            key = f"{key} accept={self.accept}"
        return key


class CacheEntry(BaseModel):
    """A stored response: status, lower-cased headers, raw body, storage time."""

    model_config = ConfigDict(frozen=True)

    status_code: int
    headers: dict[str, str] = Field(default_factory=dict)
    body: str = ""
    stored_at: float = 0.0

    def header(self, name: str) -> Optional[str]:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower())
