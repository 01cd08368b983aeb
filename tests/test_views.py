"""
Error views (views.py, error_controller.py)

Tests view precedence, rendering and the error page controller.
"""

import pytest

from errorpipe.error_controller import ErrorPageController, reason_phrase
from errorpipe.faults.domains import ConfigFault, ViewNotFoundFault
from errorpipe.request import (
    ERROR_CODE,
    ERROR_EXCEPTION_TYPE,
    ERROR_MESSAGE,
    ERROR_MODEL,
    ERROR_REQUEST_URI,
    ERROR_STATUS,
    ERROR_VIEW,
    RequestOrigin,
)
from errorpipe.views import ErrorViewResolver

from tests.conftest import make_request


def replay_request(path="/error", *, status=404, accept="text/html", **attrs):
    attributes = {
        ERROR_STATUS: status,
        ERROR_CODE: "NOT_FOUND",
        ERROR_MESSAGE: "no such member",
        ERROR_REQUEST_URI: "/members/9",
    }
    attributes.update(attrs)
    return make_request(
        path,
        accept=accept,
        origin=RequestOrigin.INTERNAL_ERROR_REPLAY,
        attributes=attributes,
    )


# ============================================================================
# ErrorViewResolver
# ============================================================================

class TestViewSelection:

    def test_exact_status_before_series(self):
        views = ErrorViewResolver(templates={
            "error/404.html": "exact",
            "error/4xx.html": "series",
            "error.html": "default",
        })
        assert views.resolve(404).name == "error/404"
        assert views.resolve(400).name == "error/4xx"
        assert views.resolve(500).name == "error"

    def test_template_before_static_for_same_key(self):
        views = ErrorViewResolver(
            templates={"error/500.html": "dynamic {{ status }}"},
            static_pages={"error/500.html": "static"},
        )
        view = views.resolve(500)
        assert view.source == "template"
        assert views.render(view, {"status": 500}) == "dynamic 500"

    def test_static_when_no_template(self):
        views = ErrorViewResolver(static_pages={"error/5xx.html": "<h1>static 5xx</h1>"})
        view = views.resolve(503)
        assert view.source == "static"
        assert views.render(view, {}) == "<h1>static 5xx</h1>"

    def test_route_named_view_first(self):
        views = ErrorViewResolver(templates={
            "error-page/500.html": "route page",
            "error/500.html": "status page",
        })
        assert views.resolve(500, route_path="/error-page/500").name == "error-page/500"
        assert views.resolve(500, route_path="/error").name == "error/500"

    def test_builtin_fallback(self):
        views = ErrorViewResolver()
        view = views.resolve(404)
        assert view.source == "builtin"
        html = views.render(view, {"status": 404, "error": "Not Found", "message": "<b>x</b>"})
        assert "404 Not Found" in html
        assert "&lt;b&gt;x&lt;/b&gt;" in html

    def test_explicit_view(self):
        views = ErrorViewResolver(templates={"members/missing.html": "missing"})
        assert views.resolve(404, explicit="members/missing").name == "members/missing"
        with pytest.raises(ViewNotFoundFault):
            views.resolve(404, explicit="members/gone")

    def test_directories(self, tmp_path):
        templates = tmp_path / "templates" / "error"
        static = tmp_path / "static" / "error"
        templates.mkdir(parents=True)
        static.mkdir(parents=True)
        (templates / "404.html").write_text("tpl {{ message }}", encoding="utf-8")
        (static / "404.html").write_text("static 404", encoding="utf-8")
        (static / "5xx.html").write_text("static 5xx", encoding="utf-8")

        views = ErrorViewResolver(
            template_dirs=[tmp_path / "templates"],
            static_dirs=[tmp_path / "static"],
        )
        assert views.render(views.resolve(404), {"message": "gone"}) == "tpl gone"
        assert views.render(views.resolve(502), {}) == "static 5xx"


# ============================================================================
# ErrorPageController
# ============================================================================

class TestErrorPageController:

    def test_reason_phrase(self):
        assert reason_phrase(404) == "Not Found"
        assert reason_phrase(599) == "Unknown Status"

    @pytest.mark.asyncio
    async def test_json_model(self):
        controller = ErrorPageController(ErrorViewResolver())
        response = await controller(replay_request(accept="application/json"))

        assert response.status_code == 404
        body = response.json_body()
        assert body["status"] == 404
        assert body["error"] == "Not Found"
        assert body["code"] == "NOT_FOUND"
        assert body["message"] == "no such member"
        assert body["path"] == "/members/9"
        assert "timestamp" in body
        assert "exception" not in body

    @pytest.mark.asyncio
    async def test_api_prefix_forces_json(self):
        controller = ErrorPageController(ErrorViewResolver(), api_path_prefixes=["/api"])
        request = replay_request(**{ERROR_REQUEST_URI: "/api/members/9"})
        response = await controller(request)
        assert response.content_type.startswith("application/json")

    @pytest.mark.asyncio
    async def test_html_view(self):
        views = ErrorViewResolver(templates={"error/404.html": "{{ status }}: {{ message }}"})
        response = await ErrorPageController(views)(replay_request())

        assert response.status_code == 404
        assert response.content_type.startswith("text/html")
        assert response.text_body == "404: no such member"

    @pytest.mark.asyncio
    async def test_model_extras_and_exception(self):
        views = ErrorViewResolver(templates={"custom.html": "{{ exception }} {{ hint }}"})
        controller = ErrorPageController(views, include_exception=True)
        request = replay_request(**{
            ERROR_VIEW: "custom",
            ERROR_MODEL: {"hint": "check the id"},
            ERROR_EXCEPTION_TYPE: "NotFoundFault",
        })
        response = await controller(request)
        assert response.text_body == "NotFoundFault check the id"

    @pytest.mark.asyncio
    async def test_missing_attributes(self):
        controller = ErrorPageController(ErrorViewResolver())
        with pytest.raises(ConfigFault):
            await controller(make_request("/error"))
