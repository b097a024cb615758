"""Shared test fixtures for starfetch.

Provides isolated config environments, a fake clock for the backoff policy,
fetch contexts rooted in ``tmp_path``, and a scriptable fake GitHub API
served through :class:`httpx.MockTransport`.  These fixtures are discovered
by pytest automatically.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Optional, Union

import httpx
import pytest

from starfetch.client import BackoffPolicy, Fetcher
from starfetch.models import FetchContext
from starfetch.output import OutputManager, reset_output, set_output


# ---------------------------------------------------------------------------
# Auto-reset global output state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Install a plain, non-quiet OutputManager and reset it afterwards.

    The OutputManager caches references to sys.stderr at creation time, so a
    fresh one is needed for each test's capture.
    """
    set_output(OutputManager(no_color=True))
    yield
    reset_output()


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration to a temporary directory.

    Sets XDG_CONFIG_HOME and XDG_CACHE_HOME to subdirectories of tmp_path,
    clears STARFETCH_* and GITHUB_TOKEN, and changes the working directory
    to tmp_path.
    """
    monkeypatch.setattr("starfetch.config._is_xdg_platform", lambda: True)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_CACHE_HOME", str(tmp_path / "cache"))

    for var in ["STARFETCH_TOKEN", "STARFETCH_CACHE_DIR", "GITHUB_TOKEN"]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Clock and policy
# ---------------------------------------------------------------------------


class FakeClock:
    """Deterministic clock whose ``sleep`` advances time and records the delay."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def policy(clock: FakeClock) -> BackoffPolicy:
    return BackoffPolicy(sleep=clock.sleep, clock=clock)


# ---------------------------------------------------------------------------
# Fetch context
# ---------------------------------------------------------------------------


@pytest.fixture
def ctx(tmp_path: Path) -> FetchContext:
    return FetchContext(token="test-token", cache_root=tmp_path / "cache", scope="octo/hello")


# ---------------------------------------------------------------------------
# Fake GitHub API
# ---------------------------------------------------------------------------


Reply = Union[httpx.Response, Exception, Callable[[httpx.Request], httpx.Response]]


class FakeAPI:
    """Scripted HTTP responder for :class:`httpx.MockTransport`.

    Each URL maps to a list of replies consumed in order; the last reply
    repeats once the list is exhausted.  A reply is an :class:`httpx.Response`,
    an exception to raise, or a callable taking the request.  Every request
    is recorded in :attr:`requests` together with the fake clock's time.
    """

    def __init__(self, clock: Optional[FakeClock] = None) -> None:
        self._routes: dict[str, list[Reply]] = {}
        self._clock = clock
        self.requests: list[httpx.Request] = []
        self.times: list[float] = []

    def route(self, url: str, *replies: Reply) -> None:
        self._routes[url] = list(replies)

    def calls(self, url: Optional[str] = None) -> int:
        if url is None:
            return len(self.requests)
        return sum(1 for r in self.requests if str(r.url) == url)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self._clock is not None:
            self.times.append(self._clock.now)
        replies = self._routes.get(str(request.url))
        if not replies:
            return httpx.Response(404, json={"message": "Not Found"})
        reply = replies.pop(0) if len(replies) > 1 else replies[0]
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            return reply(request)
        # Fresh copy: a repeated reply must not share stream state.
        return httpx.Response(reply.status_code, headers=reply.headers, content=reply.content)


def json_page(data: Any, next_url: Optional[str] = None, last_url: Optional[str] = None) -> httpx.Response:
    """Build a 200 JSON response with an optional GitHub-style Link header."""
    headers: dict[str, str] = {}
    links = []
    if next_url:
        links.append(f'<{next_url}>; rel="next"')
    if last_url:
        links.append(f'<{last_url}>; rel="last"')
    if links:
        headers["Link"] = ", ".join(links)
    return httpx.Response(200, json=data, headers=headers)


@pytest.fixture
def api(clock: FakeClock) -> FakeAPI:
    return FakeAPI(clock)


@pytest.fixture
def fetcher(api: FakeAPI, policy: BackoffPolicy) -> Fetcher:
    """An entered :class:`Fetcher` wired to the fake API and fake clock."""
    with Fetcher(policy=policy, transport=httpx.MockTransport(api)) as f:
        yield f


@pytest.fixture
def make_page() -> Callable[..., httpx.Response]:
    """Return :func:`json_page` so test modules need not import conftest."""
    return json_page
