"""Tests for the HTTP executor and status classifier."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import httpx
import pytest

from starfetch.cache import ResponseCache
from starfetch.client.executor import Executor
from starfetch.client.outcomes import Permanent, RateLimited, Success, Transient
from starfetch.exceptions import CacheIOError
from starfetch.models import FetchContext, RequestConfig, RequestIdentity

URL = "https://api.github.com/repos/octo/hello/stargazers"


def _executor(handler, user_agent: str = "test-agent/1.0") -> Executor:
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return Executor(client, RequestConfig(user_agent=user_agent), clock=lambda: 1234.5)


def _respond(status: int, **kwargs):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, **kwargs)

    return handler


def _identity(ctx: FetchContext) -> RequestIdentity:
    return RequestIdentity.for_request(ctx, URL)


# ---------------------------------------------------------------------------
# Request headers
# ---------------------------------------------------------------------------


class TestHeaders:
    def test_fixed_headers_attached(self, ctx: FetchContext) -> None:
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.headers)
            return httpx.Response(200, json=[])

        _executor(handler).execute(ctx, _identity(ctx))

        assert seen["user-agent"] == "test-agent/1.0"
        assert seen["accept-encoding"] == "gzip"
        assert seen["authorization"] == "Bearer test-token"

    def test_accept_override(self, ctx: FetchContext) -> None:
        star_ctx = ctx.with_accept("application/vnd.github.v3.star+json")
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.headers)
            return httpx.Response(200, json=[])

        _executor(handler).execute(star_ctx, _identity(star_ctx))
        assert seen["accept"] == "application/vnd.github.v3.star+json"

    def test_no_accept_override_by_default(self, ctx: FetchContext) -> None:
        headers = _executor(_respond(200)).build_headers(ctx)
        assert "Accept" not in headers

    def test_no_authorization_without_token(self, tmp_path) -> None:
        anon = FetchContext(cache_root=tmp_path, scope="octo/hello")
        headers = _executor(_respond(200)).build_headers(anon)
        assert "Authorization" not in headers


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------


class TestClassification:
    def test_200_is_success(self, ctx: FetchContext) -> None:
        handler = _respond(200, json=[{"id": 1}], headers={"Link": '<https://x>; rel="next"'})
        outcome = _executor(handler).execute(ctx, _identity(ctx))

        assert isinstance(outcome, Success)
        entry = outcome.entry
        assert entry.status_code == 200
        assert json.loads(entry.body) == [{"id": 1}]
        assert entry.header("Link") == '<https://x>; rel="next"'
        assert "link" in entry.headers
        assert entry.stored_at == 1234.5

    def test_200_is_written_to_cache(self, ctx: FetchContext) -> None:
        cache = ResponseCache(ctx.cache_root)
        try:
            outcome = _executor(_respond(200, json={"ok": True})).execute(
                ctx, _identity(ctx), cache
            )
            assert cache.get(ctx.scope, _identity(ctx)) == outcome.entry
        finally:
            cache.close()

    def test_cache_write_failure_still_succeeds(self, ctx: FetchContext, capsys) -> None:
        cache = MagicMock(spec=ResponseCache)
        cache.put.side_effect = CacheIOError("disk full")

        outcome = _executor(_respond(200, json=[])).execute(ctx, _identity(ctx), cache)

        assert isinstance(outcome, Success)
        assert "unable to cache" in capsys.readouterr().err

    def test_202_is_transient(self, ctx: FetchContext) -> None:
        outcome = _executor(_respond(202, json={})).execute(ctx, _identity(ctx))
        assert isinstance(outcome, Transient)
        assert "202" in outcome.cause

    def test_403_with_exhausted_quota_is_rate_limited(self, ctx: FetchContext) -> None:
        handler = _respond(
            403,
            json={"message": "API rate limit exceeded"},
            headers={"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "1700000300"},
        )
        outcome = _executor(handler).execute(ctx, _identity(ctx))
        assert outcome == RateLimited(reset_at=1700000300.0)

    @pytest.mark.parametrize(
        "headers",
        [
            {},
            {"X-RateLimit-Remaining": "12", "X-RateLimit-Reset": "1700000300"},
            {"X-RateLimit-Remaining": "0"},
            {"X-RateLimit-Remaining": "zero", "X-RateLimit-Reset": "1700000300"},
            {"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "soon"},
        ],
    )
    def test_other_403_is_permanent(self, ctx: FetchContext, headers) -> None:
        handler = _respond(403, json={"message": "Forbidden"}, headers=headers)
        outcome = _executor(handler).execute(ctx, _identity(ctx))
        assert isinstance(outcome, Permanent)
        assert outcome.status == 403

    @pytest.mark.parametrize("status", [301, 400, 401, 404, 409, 422, 500, 502, 503])
    def test_other_statuses_are_permanent(self, ctx: FetchContext, status: int) -> None:
        outcome = _executor(_respond(status, text="")).execute(ctx, _identity(ctx))
        assert isinstance(outcome, Permanent)
        assert outcome.status == status

    def test_permanent_diagnostic_names_request_and_message(self, ctx: FetchContext) -> None:
        handler = _respond(404, json={"message": "Not Found"})
        outcome = _executor(handler).execute(ctx, _identity(ctx))
        assert URL in outcome.diagnostic
        assert "404" in outcome.diagnostic
        assert "Not Found" in outcome.diagnostic

    def test_permanent_diagnostic_with_plain_text_body(self, ctx: FetchContext) -> None:
        outcome = _executor(_respond(500, text="upstream exploded")).execute(
            ctx, _identity(ctx)
        )
        assert "upstream exploded" in outcome.diagnostic

    @pytest.mark.parametrize(
        "exc_type", [httpx.ConnectError, httpx.ReadTimeout, httpx.RemoteProtocolError]
    )
    def test_transport_failure_is_transient(self, ctx: FetchContext, exc_type) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise exc_type("connection reset", request=request)

        outcome = _executor(handler).execute(ctx, _identity(ctx))
        assert isinstance(outcome, Transient)
        assert URL in outcome.cause

    def test_non_200_is_not_cached(self, ctx: FetchContext) -> None:
        cache = MagicMock(spec=ResponseCache)
        _executor(_respond(404, json={})).execute(ctx, _identity(ctx), cache)
        cache.put.assert_not_called()
