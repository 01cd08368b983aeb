"""
Error page controller - handles internal error replays.

Answers JSON for API-style requests and renders the selected error view for
page-style requests.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from http import HTTPStatus
from typing import Any, Iterable

from .faults.domains import ConfigFault
from .request import (
    ERROR_CODE,
    ERROR_EXCEPTION_TYPE,
    ERROR_MESSAGE,
    ERROR_MODEL,
    ERROR_REQUEST_URI,
    ERROR_STATUS,
    ERROR_VIEW,
    RequestRecord,
)
from .response import TransportResponse
from .views import ErrorViewResolver

logger = logging.getLogger("errorpipe.error_controller")


def reason_phrase(status: int) -> str:
    try:
        return HTTPStatus(status).phrase
    except ValueError:
        return "Unknown Status"


class ErrorPageController:
    """
    Default handler for error routes.

    Args:
        views: Error view resolver
        default_path: The default error route (status-based view rules apply
            there; other routes first try a view named after themselves)
        api_path_prefixes: Original paths that always get JSON
        include_exception: Expose the exception type name in the model
    """

    def __init__(
        self,
        views: ErrorViewResolver,
        *,
        default_path: str = "/error",
        api_path_prefixes: Iterable[str] = (),
        include_exception: bool = False,
    ):
        self.views = views
        self.default_path = default_path
        self.api_path_prefixes = tuple(api_path_prefixes)
        self.include_exception = include_exception

    def error_model(self, request: RequestRecord) -> dict[str, Any]:
        attrs = request.attributes
        status = attrs.get(ERROR_STATUS)
        if status is None:
            raise ConfigFault(f"{request.path} reached the error controller without error attributes")

        model: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "status": status,
            "error": reason_phrase(status),
            "code": attrs.get(ERROR_CODE),
            "message": attrs.get(ERROR_MESSAGE) or "",
            "path": attrs.get(ERROR_REQUEST_URI) or request.path,
        }
        if self.include_exception and attrs.get(ERROR_EXCEPTION_TYPE):
            model["exception"] = attrs[ERROR_EXCEPTION_TYPE]
        model.update(attrs.get(ERROR_MODEL) or {})
        return model

    def _wants_json(self, request: RequestRecord) -> bool:
        original = request.attributes.get(ERROR_REQUEST_URI)
        if original:
            for prefix in self.api_path_prefixes:
                prefix = prefix.rstrip("/")
                if original == prefix or original.startswith(prefix + "/"):
                    return True
        return request.wants_json()

    async def __call__(self, request: RequestRecord) -> TransportResponse:
        model = self.error_model(request)
        status = model["status"]

        if self._wants_json(request):
            return TransportResponse.json(model, status)

        view = self.views.resolve(
            status,
            route_path=request.path,
            default_path=self.default_path,
            explicit=request.attributes.get(ERROR_VIEW),
        )
        logger.debug(f"Rendering error view {view.name} [{view.source}] for {status}")
        return TransportResponse.html(self.views.render(view, model), status)
