"""
errorpipe faults - Core types and fault taxonomy.

Defines:
- Fault base class (immutable, typed fault values)
- FaultKind (closed set of fault kinds)
- Severity levels
- response_status annotation
- FaultContext (runtime context wrapper)
- ResolutionOutcome variants (Empty, Render, Respond, Unresolved)
"""

from __future__ import annotations

import hashlib
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Iterator, Mapping, Optional, Union

if TYPE_CHECKING:
    from ..request import RequestRecord
    from .classifier import Classification


# ============================================================================
# Severity & Kind Enums
# ============================================================================

class Severity(str, Enum):
    """
    Fault severity levels.

    Determines the logging level used when a fault is emitted.
    """
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"


class FaultKind(str, Enum):
    """Closed set of fault kinds understood by the pipeline."""
    INVALID_INPUT = "invalid_input"
    NOT_FOUND = "not_found"
    UNAUTHORIZED = "unauthorized"
    INTERNAL = "internal"
    DOMAIN_SPECIFIC = "domain_specific"


# ============================================================================
# Status annotation
# ============================================================================

@dataclass(frozen=True, slots=True)
class StatusAnnotation:
    """Status declared on a fault type."""
    status: int
    code: Optional[str] = None
    reason: Optional[str] = None


STATUS_ATTR = "__response_status__"


def response_status(status: int, *, code: Optional[str] = None, reason: Optional[str] = None):
    """
    Annotate an exception type with the HTTP status it maps to.

    Subtypes inherit the annotation unless they declare their own.
    ``reason`` may be a literal message or a message key resolved through
    the MessageSource.

    Example:
        ```python
        @response_status(400, reason="error.bad")
        class BadRequestFault(ClientFault):
            ...
        ```
    """
    if not 100 <= status <= 599:
        raise ValueError(f"Invalid HTTP status: {status}")

    def decorator(cls: type) -> type:
        if not (isinstance(cls, type) and issubclass(cls, BaseException)):
            raise TypeError("@response_status can only annotate exception types")
        setattr(cls, STATUS_ATTR, StatusAnnotation(status, code, reason))
        return cls

    return decorator


def declared_status(cls: type) -> Optional[StatusAnnotation]:
    """Return the annotation declared directly on ``cls`` (not inherited)."""
    return cls.__dict__.get(STATUS_ATTR)


# ============================================================================
# Fault - Base Class
# ============================================================================

_FROZEN_FIELDS = frozenset({"kind", "code", "message", "metadata", "severity"})


class Fault(Exception):
    """
    Base fault class - structured, immutable fault value.

    A fault carries:
    - kind: one of FaultKind
    - code: stable machine-readable identifier (e.g. "USER-EX")
    - message: optional human-readable message
    - severity: logging severity
    - metadata: read-only additional data

    The cause chain is the regular exception chain (``raise ... from ...``).

    Subclasses may set ``kind``, ``code``, ``message`` and ``severity`` as
    class attributes and call ``super().__init__()`` with fewer arguments.

    Example:
        ```python
        raise Fault(
            FaultKind.NOT_FOUND,
            code="MEMBER_NOT_FOUND",
            message="member 42 not found",
        )
        ```
    """

    kind: FaultKind = FaultKind.INTERNAL
    code: str = "INTERNAL"
    message: Optional[str] = None
    severity: Severity = Severity.ERROR

    def __init__(
        self,
        kind: Optional[FaultKind] = None,
        *,
        code: Optional[str] = None,
        message: Optional[str] = None,
        severity: Optional[Severity] = None,
        metadata: Optional[Mapping[str, Any]] = None,
    ):
        cls = type(self)
        object.__setattr__(self, "kind", FaultKind(kind) if kind is not None else cls.kind)
        object.__setattr__(self, "code", code if code is not None else cls.code)
        object.__setattr__(self, "message", message if message is not None else cls.message)
        object.__setattr__(self, "severity", severity or cls.severity)
        object.__setattr__(self, "metadata", MappingProxyType(dict(metadata or {})))
        object.__setattr__(self, "_sealed", True)
        super().__init__(self.message if self.message is not None else self.code)

    def __setattr__(self, name: str, value: Any) -> None:
        if name in _FROZEN_FIELDS and self.__dict__.get("_sealed"):
            raise AttributeError(f"{type(self).__name__}.{name} is immutable")
        object.__setattr__(self, name, value)

    def __delattr__(self, name: str) -> None:
        if name in _FROZEN_FIELDS:
            raise AttributeError(f"{type(self).__name__}.{name} is immutable")
        object.__delattr__(self, name)

    def __str__(self) -> str:
        if self.message:
            return f"[{self.code}] {self.message}"
        return f"[{self.code}]"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.value}, code={self.code!r})"

    @property
    def cause(self) -> Optional[BaseException]:
        """Direct cause (explicit ``raise from`` first, then implicit context)."""
        return self.__cause__ or self.__context__

    def cause_chain(self) -> Iterator[BaseException]:
        """Iterate the cause chain, nearest first. Cycles are cut."""
        seen = {id(self)}
        current = self.cause
        while current is not None and id(current) not in seen:
            seen.add(id(current))
            yield current
            current = current.__cause__ or current.__context__

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "code": self.code,
            "message": self.message,
            "severity": self.severity.value,
            "metadata": dict(self.metadata),
        }


def kind_of(exc: BaseException) -> FaultKind:
    """
    Infer the fault kind of any raised value.

    Faults report their own kind; common built-in exception families map to
    the nearest kind; everything else is INTERNAL.
    """
    if isinstance(exc, Fault):
        return exc.kind
    if isinstance(exc, (ValueError, TypeError)):
        return FaultKind.INVALID_INPUT
    if isinstance(exc, PermissionError):
        return FaultKind.UNAUTHORIZED
    if isinstance(exc, LookupError):
        return FaultKind.NOT_FOUND
    return FaultKind.INTERNAL


def type_distance(exc_type: type, target: type) -> Optional[int]:
    """
    Distance of ``target`` in the MRO of ``exc_type``.

    0 means exact match; None means ``target`` is not an ancestor.
    """
    try:
        return exc_type.__mro__.index(target)
    except ValueError:
        return None


# ============================================================================
# FaultContext - Runtime Context Wrapper
# ============================================================================

@dataclass(slots=True)
class FaultContext:
    """
    Runtime context wrapper for a fault being resolved.

    Attributes:
        exception: The raised value (Fault or plain exception)
        request: Request during which it was raised
        classification: Classifier result (status, code, message)
        trace_id: Unique id for this fault occurrence
        timestamp: When the fault was captured
        controller: Name of the handler/controller that raised it
    """

    exception: BaseException
    request: "RequestRecord"
    classification: "Classification"
    trace_id: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    controller: Optional[str] = None

    @classmethod
    def capture(
        cls,
        exception: BaseException,
        request: "RequestRecord",
        classification: "Classification",
    ) -> FaultContext:
        trace_data = f"{type(exception).__name__}:{request.path}:{time.time_ns()}"
        trace_id = hashlib.sha256(trace_data.encode()).hexdigest()[:16]
        return cls(
            exception=exception,
            request=request,
            classification=classification,
            trace_id=trace_id,
            controller=request.controller,
        )

    @property
    def kind(self) -> FaultKind:
        return kind_of(self.exception)

    @property
    def code(self) -> str:
        return self.classification.code

    @property
    def severity(self) -> Severity:
        if isinstance(self.exception, Fault):
            return self.exception.severity
        return Severity.ERROR

    def to_dict(self) -> dict[str, Any]:
        return {
            "trace_id": self.trace_id,
            "timestamp": self.timestamp.isoformat(),
            "exception_type": type(self.exception).__name__,
            "kind": self.kind.value,
            "status": self.classification.status,
            "code": self.classification.code,
            "path": self.request.path,
            "origin": self.request.origin.value,
            "controller": self.controller,
        }

    def __str__(self) -> str:
        return f"FaultContext[{self.trace_id}]({self.request.path}): {self.exception!r}"


# ============================================================================
# ResolutionOutcome - Strategy result types
# ============================================================================

@dataclass(frozen=True)
class Empty:
    """
    Fault handled; suppress further processing.

    With an error ``status`` this is a send-error signal: no body comes from
    the handler and the boundary renders the error page for that status.
    ``propagated`` marks a fault nothing handled; only then do
    exception-type error routes apply.
    """
    status: Optional[int] = None
    message: Optional[str] = None
    propagated: bool = False

    @property
    def is_error(self) -> bool:
        return self.status is not None and self.status >= 400


@dataclass(frozen=True)
class Render:
    """Render an error view through the internal error route for ``status``."""
    status: int
    view_id: Optional[str] = None
    model: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Respond:
    """Respond directly with ``body`` (serialized as JSON for API contexts)."""
    status: int
    body: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class Unresolved:
    """Strategy declined; try the next one or propagate."""
    pass


ResolutionOutcome = Union[Empty, Render, Respond, Unresolved]
OUTCOME_TYPES = (Empty, Render, Respond, Unresolved)


@dataclass(frozen=True, slots=True)
class ErrorResult:
    """Structured error body returned by declared exception handlers."""
    code: str
    message: Optional[str]

    def to_dict(self, status: Optional[int] = None) -> dict[str, Any]:
        body: dict[str, Any] = {}
        if status is not None:
            body["status"] = status
        body["code"] = self.code
        body["message"] = self.message
        return body
