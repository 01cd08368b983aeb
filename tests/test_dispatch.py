"""
Dispatch gating (dispatch.py, middleware.py)

Tests path patterns, the DispatchGate, the cross-cutting registry and the
built-in logging filter and interceptor.
"""

import logging

import pytest

from errorpipe.dispatch import (
    CrossCuttingRegistry,
    DispatchGate,
    Interceptor,
    match_ant_pattern,
    match_url_pattern,
)
from errorpipe.middleware import LogFilter, LogInterceptor
from errorpipe.request import RequestOrigin

from tests.conftest import RecordingFilter, make_request


class TestPatterns:

    @pytest.mark.parametrize("pattern, path, expected", [
        ("/**", "/", True),
        ("/**", "/a/b/c", True),
        ("/error-page/**", "/error-page", True),
        ("/error-page/**", "/error-page/500", True),
        ("/error-page/**", "/error-pages/500", False),
        ("/api/*", "/api/members", True),
        ("/api/*", "/api/members/1", False),
        ("/api/?", "/api/1", True),
        ("/css/**/*.css", "/css/a/b/site.css", True),
        ("/error", "/error", True),
        ("/error", "/error/x", False),
    ])
    def test_ant(self, pattern, path, expected):
        assert match_ant_pattern(pattern, path) is expected

    @pytest.mark.parametrize("pattern, path, expected", [
        ("/*", "/anything/here", True),
        ("/api/*", "/api", True),
        ("/api/*", "/api/members", True),
        ("/api/*", "/apix", False),
        ("*.html", "/page/index.html", True),
        ("/exact", "/exact", True),
        ("/exact", "/exact/more", False),
    ])
    def test_url(self, pattern, path, expected):
        assert match_url_pattern(pattern, path) is expected


class TestDispatchGate:

    def test_should_run_cross_cutting(self):
        gate = DispatchGate()
        assert gate.should_run_cross_cutting(RequestOrigin.INTERNAL_ERROR_REPLAY) is False
        assert gate.should_run_cross_cutting(RequestOrigin.CLIENT_REQUEST) is True
        for origin in (
            RequestOrigin.INTERNAL_FORWARD,
            RequestOrigin.INTERNAL_INCLUDE,
            RequestOrigin.ASYNC_CONTINUATION,
        ):
            assert gate.should_run_cross_cutting(origin) is True

    def test_filters_default_to_client_requests(self):
        registry = CrossCuttingRegistry()
        reg = registry.add_filter(RecordingFilter())

        assert registry.gate.admits_filter(reg, make_request("/x"))
        assert not registry.gate.admits_filter(
            reg, make_request("/error", origin=RequestOrigin.INTERNAL_ERROR_REPLAY)
        )

    def test_filters_follow_gate_for_internal_origins(self):
        registry = CrossCuttingRegistry()
        reg = registry.add_filter(RecordingFilter())

        for origin in (
            RequestOrigin.INTERNAL_FORWARD,
            RequestOrigin.INTERNAL_INCLUDE,
            RequestOrigin.ASYNC_CONTINUATION,
        ):
            assert registry.filters_for(make_request("/x", origin=origin)) == [reg]

    def test_filter_opt_in_to_replays(self):
        registry = CrossCuttingRegistry()
        reg = registry.add_filter(
            RecordingFilter(),
            dispatch_types=[RequestOrigin.CLIENT_REQUEST, RequestOrigin.INTERNAL_ERROR_REPLAY],
        )
        replay = make_request("/error", origin=RequestOrigin.INTERNAL_ERROR_REPLAY)
        assert registry.filters_for(replay) == [reg]

    def test_filter_url_patterns(self):
        registry = CrossCuttingRegistry()
        registry.add_filter(RecordingFilter(), url_patterns=["/api/*"])
        assert registry.filters_for(make_request("/page")) == []
        assert len(registry.filters_for(make_request("/api/members"))) == 1

    def test_interceptors_skip_error_routes(self):
        registry = CrossCuttingRegistry()
        reg = registry.add_interceptor(Interceptor())

        assert registry.interceptors_for(make_request("/members")) == [reg]
        assert registry.interceptors_for(make_request("/error")) == []
        assert registry.interceptors_for(make_request("/error-page/500")) == []

    def test_interceptors_ignore_origin(self):
        registry = CrossCuttingRegistry()
        reg = registry.add_interceptor(Interceptor(), exclude_error_routes=False)
        replay = make_request("/error", origin=RequestOrigin.INTERNAL_ERROR_REPLAY)
        assert registry.interceptors_for(replay) == [reg]

    def test_interceptor_include_exclude(self):
        registry = CrossCuttingRegistry()
        registry.add_interceptor(Interceptor(), include=["/api/**"], exclude=["/api/public/**"])
        assert len(registry.interceptors_for(make_request("/api/members"))) == 1
        assert registry.interceptors_for(make_request("/api/public/x")) == []
        assert registry.interceptors_for(make_request("/page")) == []

    def test_custom_error_paths(self):
        registry = CrossCuttingRegistry(DispatchGate(("/oops", "/pages/errors/**")))
        registry.add_interceptor(Interceptor())
        assert registry.interceptors_for(make_request("/error")) != []
        assert registry.interceptors_for(make_request("/pages/errors/404")) == []

    def test_sorted_by_order(self):
        registry = CrossCuttingRegistry()
        second = registry.add_filter(RecordingFilter(), order=2, name="second")
        first = registry.add_filter(RecordingFilter(), order=1, name="first")
        assert registry.filters == [first, second]


class TestLogging:

    @pytest.mark.asyncio
    async def test_log_filter(self, caplog):
        caplog.set_level(logging.INFO, logger="errorpipe.filter")

        async def endpoint(request):
            return "ok"

        result = await LogFilter()(make_request("/members"), endpoint)
        assert result == "ok"
        messages = [r.getMessage() for r in caplog.records]
        assert any(m.startswith("REQUEST") and "/members" in m for m in messages)
        assert any(m.startswith("RESPONSE") for m in messages)

    @pytest.mark.asyncio
    async def test_log_filter_reraises(self, caplog):
        caplog.set_level(logging.INFO, logger="errorpipe.filter")

        async def endpoint(request):
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            await LogFilter()(make_request("/members"), endpoint)
        assert "EXCEPTION" in caplog.text

    @pytest.mark.asyncio
    async def test_log_interceptor(self, caplog):
        caplog.set_level(logging.INFO, logger="errorpipe.interceptor")
        interceptor = LogInterceptor()
        request = make_request("/members")

        assert await interceptor.pre_handle(request) is True
        await interceptor.after_completion(request, RuntimeError("boom"))
        assert "afterCompletion error" in caplog.text
