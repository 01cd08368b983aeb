"""
Response records returned to the transport layer.

The pipeline answers with either a TransportResponse or a Redispatch
instruction (re-enter the server through an internal error route).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import orjson

from .request import RequestOrigin

FALLBACK_BODY = b"Internal Server Error"


def _json_default_serializer(o: Any) -> Any:
    """Default JSON serializer for non-standard types."""
    if isinstance(o, (set, frozenset, tuple)):
        return list(o)
    if hasattr(o, "to_dict"):
        return o.to_dict()
    if hasattr(o, "isoformat"):
        return o.isoformat()
    return str(o)


@dataclass(frozen=True, slots=True)
class ErrorSignal:
    """Error recorded on a response instead of raising (``send_error``)."""
    status: int
    message: Optional[str] = None


@dataclass
class TransportResponse:
    """
    Response record ``{status_code, headers, body}``.

    Header names are stored lower-cased.
    """

    status_code: int = 200
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    error: Optional[ErrorSignal] = None

    def __post_init__(self) -> None:
        self.headers = {k.lower(): v for k, v in self.headers.items()}

    # ========================================================================
    # Factory Methods
    # ========================================================================

    @classmethod
    def json(
        cls,
        obj: Any,
        status: int = 200,
        *,
        headers: Optional[Mapping[str, str]] = None,
    ) -> "TransportResponse":
        """
        Create JSON response.

        Args:
            obj: Object to serialize
            status: HTTP status
            headers: Additional headers

        Returns:
            Response with JSON content
        """
        content = orjson.dumps(obj, default=_json_default_serializer)
        merged = {**(headers or {}), "content-type": "application/json; charset=utf-8"}
        return cls(status_code=status, headers=merged, body=content)

    @classmethod
    def html(cls, content: str, status: int = 200, **kwargs: Any) -> "TransportResponse":
        """Create HTML response."""
        headers = {**kwargs.pop("headers", {}), "content-type": "text/html; charset=utf-8"}
        return cls(status_code=status, headers=headers, body=content.encode("utf-8"), **kwargs)

    @classmethod
    def text(cls, content: str, status: int = 200, **kwargs: Any) -> "TransportResponse":
        """Create plain text response."""
        headers = {**kwargs.pop("headers", {}), "content-type": "text/plain; charset=utf-8"}
        return cls(status_code=status, headers=headers, body=content.encode("utf-8"), **kwargs)

    @classmethod
    def empty(cls, status: int = 200) -> "TransportResponse":
        return cls(status_code=status)

    @classmethod
    def send_error(cls, status: int, message: Optional[str] = None) -> "TransportResponse":
        """
        Record an error without raising.

        The boundary notices the signal and renders the error page for
        ``status`` before the response reaches the client.
        """
        return cls(status_code=status, error=ErrorSignal(status, message))

    @classmethod
    def fallback(cls) -> "TransportResponse":
        """Hardcoded minimal response used when error handling itself fails."""
        return cls(
            status_code=500,
            headers={"content-type": "text/plain; charset=utf-8"},
            body=FALLBACK_BODY,
        )

    # ========================================================================
    # Accessors
    # ========================================================================

    @property
    def is_error_signal(self) -> bool:
        return self.error is not None

    @property
    def content_type(self) -> Optional[str]:
        return self.headers.get("content-type")

    def json_body(self) -> Any:
        return orjson.loads(self.body)

    @property
    def text_body(self) -> str:
        return self.body.decode("utf-8")


@dataclass(frozen=True)
class Redispatch:
    """
    Instruction to internally re-dispatch to ``path``.

    The transport (or ``ErrorPipeline.dispatch``) issues a new request for
    ``path`` tagged ``origin`` and carrying ``attributes``.
    """

    path: str
    status: int
    attributes: Mapping[str, Any] = field(default_factory=dict)
    origin: RequestOrigin = RequestOrigin.INTERNAL_ERROR_REPLAY
