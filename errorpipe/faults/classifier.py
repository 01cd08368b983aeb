"""
errorpipe faults - Fault classification.

Maps a raised value to a canonical (status, code, message) triple.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .core import Fault, FaultKind, StatusAnnotation, declared_status
from .domains import RegistryFrozenFault

DEFAULT_STATUS = 500
DEFAULT_CODE = "INTERNAL"
GENERIC_MESSAGE = "Internal server error"

# Status of a fault whose type carries no annotation, by kind.
# DOMAIN_SPECIFIC has no entry: its status comes from declarations.
KIND_STATUS: dict[FaultKind, StatusAnnotation] = {
    FaultKind.INVALID_INPUT: StatusAnnotation(400, "BAD"),
    FaultKind.NOT_FOUND: StatusAnnotation(404, "NOT_FOUND"),
    FaultKind.UNAUTHORIZED: StatusAnnotation(401, "UNAUTHORIZED"),
    FaultKind.INTERNAL: StatusAnnotation(500, DEFAULT_CODE),
}


@dataclass(frozen=True, slots=True)
class Classification:
    """Canonical classification of a fault."""
    status: int
    code: str
    message: str
    reason: Optional[str] = None
    annotated: bool = False

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status < 500

    @property
    def is_server_error(self) -> bool:
        return self.status >= 500


class FaultClassifier:
    """
    Classifies faults by their nearest annotated type.

    Annotations come from ``@response_status`` on the class or from
    ``declare()`` on this classifier (which wins for the same class, so
    third-party exception types can be annotated without touching them).
    A ``Fault`` without an annotated type falls back to ``KIND_STATUS``
    for its kind. A code left at the ``Fault`` default is replaced by the
    annotation code.

    ``classify`` is pure: the declaration table is frozen before the first
    request and never mutated afterwards.
    """

    def __init__(self, *, generic_message: str = GENERIC_MESSAGE):
        self.generic_message = generic_message
        self._declared: dict[type, StatusAnnotation] = {}
        self._frozen = False

    def declare(
        self,
        exc_type: type,
        status: int,
        *,
        code: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        if self._frozen:
            raise RegistryFrozenFault("FaultClassifier")
        if not (isinstance(exc_type, type) and issubclass(exc_type, BaseException)):
            raise TypeError(f"Cannot declare status for non-exception {exc_type!r}")
        self._declared[exc_type] = StatusAnnotation(status, code, reason)

    def freeze(self) -> None:
        self._frozen = True

    def annotation_for(self, exc_type: type) -> Optional[StatusAnnotation]:
        """Nearest annotation in the MRO of ``exc_type``."""
        for klass in exc_type.__mro__:
            annotation = self._declared.get(klass) or declared_status(klass)
            if annotation is not None:
                return annotation
        return None

    def classify(self, exc: BaseException) -> Classification:
        annotation = self.annotation_for(type(exc))
        own_code = exc.code if isinstance(exc, Fault) else None
        original = message_of(exc)

        if annotation is None and isinstance(exc, Fault):
            annotation = KIND_STATUS.get(exc.kind)
        if annotation is not None and own_code == Fault.code:
            own_code = None

        if annotation is None:
            return Classification(
                status=DEFAULT_STATUS,
                code=own_code or DEFAULT_CODE,
                message=self.generic_message,
            )

        code = own_code or annotation.code or DEFAULT_CODE
        if annotation.status >= 500:
            message = self.generic_message
        else:
            message = original or annotation.reason or ""
        return Classification(
            status=annotation.status,
            code=code,
            message=message,
            reason=annotation.reason,
            annotated=True,
        )


def message_of(exc: BaseException) -> Optional[str]:
    if isinstance(exc, Fault):
        return exc.message
    if exc.args:
        return str(exc.args[0]) if len(exc.args) == 1 else str(exc)
    return None
