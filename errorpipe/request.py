"""
Request records supplied by the transport layer.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional


class RequestOrigin(str, Enum):
    """
    Where a request came from.

    Only client requests are seen by cross-cutting filters by default;
    internal error replays never re-run them.
    """
    CLIENT_REQUEST = "request"
    INTERNAL_ERROR_REPLAY = "error"
    INTERNAL_FORWARD = "forward"
    INTERNAL_INCLUDE = "include"
    ASYNC_CONTINUATION = "async"


# Attributes carried by an internal error replay
ERROR_STATUS = "error.status_code"
ERROR_CODE = "error.code"
ERROR_MESSAGE = "error.message"
ERROR_EXCEPTION = "error.exception"
ERROR_EXCEPTION_TYPE = "error.exception_type"
ERROR_REQUEST_URI = "error.request_uri"
ERROR_VIEW = "error.view"
ERROR_MODEL = "error.model"

JSON_MEDIA_TYPES = ("application/json", "application/problem+json")
HTML_MEDIA_TYPES = ("text/html", "application/xhtml+xml")


def parse_accept(value: Optional[str]) -> list[tuple[str, float]]:
    """
    Parse an Accept header into ``(media_type, q)`` sorted by preference.

    Order among equal q-values is preserved.
    """
    if not value:
        return []
    items: list[tuple[int, str, float]] = []
    for index, part in enumerate(value.split(",")):
        pieces = [p.strip() for p in part.split(";")]
        media = pieces[0].lower()
        if not media:
            continue
        q = 1.0
        for param in pieces[1:]:
            if param.startswith("q="):
                try:
                    q = float(param[2:])
                except ValueError:
                    q = 0.0
        items.append((index, media, q))
    items.sort(key=lambda item: (-item[2], item[0]))
    return [(media, q) for _, media, q in items if q > 0]


def _is_json(media: str) -> bool:
    return media in JSON_MEDIA_TYPES or media.endswith("+json")


def accepts_json(accept: Optional[str]) -> bool:
    """True unless HTML is preferred over JSON in ``accept``."""
    for media, _ in parse_accept(accept):
        if _is_json(media):
            return True
        if media in HTML_MEDIA_TYPES:
            return False
    return True


@dataclass(frozen=True)
class RequestRecord:
    """
    Generic request record ``{path, method, headers, origin}``.

    ``controller`` names the handler the router picked (used to scope
    declared exception handlers). ``attributes`` carries error details on
    internal error replays.
    """

    path: str
    method: str = "GET"
    headers: Mapping[str, str] = field(default_factory=dict)
    origin: RequestOrigin = RequestOrigin.CLIENT_REQUEST
    controller: Optional[str] = None
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        normalized = {str(k).lower(): str(v) for k, v in dict(self.headers).items()}
        object.__setattr__(self, "headers", MappingProxyType(normalized))
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))
        object.__setattr__(self, "method", self.method.upper())

    def header(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self.headers.get(name.lower(), default)

    @property
    def accept(self) -> Optional[str]:
        return self.header("accept")

    @property
    def locale(self) -> Optional[str]:
        value = self.header("accept-language")
        if not value:
            return None
        return value.split(",")[0].split(";")[0].strip() or None

    @property
    def is_replay(self) -> bool:
        return self.origin is RequestOrigin.INTERNAL_ERROR_REPLAY

    def wants_json(self, api_path_prefixes: Iterable[str] = ()) -> bool:
        """
        API-style (JSON) or page-style (HTML) response.

        Requests under an API prefix are always JSON. Otherwise the most
        preferred of JSON and HTML in the Accept header wins; no Accept
        header, or one naming neither, means JSON.
        """
        for prefix in api_path_prefixes:
            prefix = prefix.rstrip("/")
            if self.path == prefix or self.path.startswith(prefix + "/"):
                return True
        return accepts_json(self.accept)

    def replay(self, path: str, attributes: Mapping[str, Any]) -> "RequestRecord":
        """Synthetic internal error request for ``path``."""
        return RequestRecord(
            path=path,
            method=self.method,
            headers=dict(self.headers),
            origin=RequestOrigin.INTERNAL_ERROR_REPLAY,
            controller=None,
            attributes=attributes,
        )
