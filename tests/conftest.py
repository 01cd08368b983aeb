"""
Shared test fixtures and helpers for the errorpipe test suite.
"""

from typing import Any, Dict, Optional

import pytest

from errorpipe.config import PipelineConfig
from errorpipe.dispatch import Interceptor
from errorpipe.pipeline import ErrorPipeline
from errorpipe.request import RequestOrigin, RequestRecord


# ============================================================================
# Request Helpers
# ============================================================================


def make_request(
    path: str = "/",
    *,
    method: str = "GET",
    accept: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
    origin: RequestOrigin = RequestOrigin.CLIENT_REQUEST,
    controller: Optional[str] = None,
    attributes: Optional[Dict[str, Any]] = None,
) -> RequestRecord:
    """Build a request record the way a transport would."""
    all_headers = dict(headers or {})
    if accept is not None:
        all_headers["accept"] = accept
    return RequestRecord(
        path=path,
        method=method,
        headers=all_headers,
        origin=origin,
        controller=controller,
        attributes=attributes or {},
    )


def raising(exc: BaseException):
    """Handler that raises ``exc``."""
    def handler(request):
        raise exc
    return handler


class RecordingInterceptor(Interceptor):
    """Records every callback it receives."""

    def __init__(self, allow: bool = True):
        self.allow = allow
        self.calls: list = []

    async def pre_handle(self, request):
        self.calls.append(("pre", request.path, request.origin))
        return self.allow

    async def post_handle(self, request, response):
        self.calls.append(("post", request.path))

    async def after_completion(self, request, error):
        self.calls.append(("after", request.path, error))


class RecordingFilter:
    """Filter that records the requests it sees."""

    def __init__(self):
        self.seen: list = []

    async def __call__(self, request, next):
        self.seen.append((request.path, request.origin))
        return await next(request)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def config() -> PipelineConfig:
    """Error routes of a typical web server setup."""
    return PipelineConfig(
        error_routes={
            "404": "/error-page/404",
            "500": "/error-page/500",
            "builtins.RuntimeError": "/error-page/500",
        },
        api_path_prefixes=["/api"],
    )


@pytest.fixture
def pipeline(config) -> ErrorPipeline:
    return ErrorPipeline(config)


@pytest.fixture
def bare_pipeline() -> ErrorPipeline:
    """Pipeline with only the default error route."""
    return ErrorPipeline(PipelineConfig())
