"""
errorpipe faults - Fault handlers.

Defines the strategy abstraction, chain entries, and the scoped registry of
declared exception handlers.

Declared handlers are registered at scopes:
- controller (handlers local to one controller)
- advice (shared handlers, optionally restricted to paths or controllers)

Resolution order: Controller → Advice (in registration order)
"""

from __future__ import annotations

import inspect
import itertools
import types
import typing
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Optional, Sequence

from .core import FaultContext, ResolutionOutcome, type_distance
from .domains import RegistryFrozenFault

Predicate = Callable[[FaultContext], Any]
StrategyFn = Callable[[FaultContext], Any]


class FaultHandler(ABC):
    """
    Abstract base class for resolution strategies.

    ``handle`` returns a ResolutionOutcome:
    - Empty: fault handled, nothing more to produce
    - Render: render an error view through the error route
    - Respond: respond directly
    - Unresolved: defer to the next strategy

    Example:
        ```python
        class TeapotHandler(FaultHandler):
            def can_handle(self, ctx):
                return isinstance(ctx.exception, TeapotFault)

            async def handle(self, ctx):
                return Respond(418, {"code": "TEAPOT"})
        ```
    """

    @abstractmethod
    async def handle(self, ctx: FaultContext) -> ResolutionOutcome:
        """
        Handle fault context.

        Args:
            ctx: Fault context to handle

        Returns:
            ResolutionOutcome
        """
        pass

    def can_handle(self, ctx: FaultContext) -> bool:
        """
        Pre-filter faults before ``handle`` is called.

        Args:
            ctx: Fault context

        Returns:
            True if handler can process this fault
        """
        return True


# ============================================================================
# Chain entries
# ============================================================================

@dataclass(frozen=True, slots=True)
class ResolverEntry:
    """Ordered (priority, predicate, strategy) entry of the resolver chain."""
    priority: int
    sequence: int
    predicate: Predicate
    strategy: StrategyFn
    name: str

    @property
    def sort_key(self) -> tuple[int, int]:
        return (self.priority, self.sequence)


# ============================================================================
# Declared exception handlers
# ============================================================================

@dataclass(frozen=True, slots=True)
class DeclaredHandler:
    """One declared exception handler function."""
    exception_types: tuple[type, ...]
    fn: Callable[..., Any]
    status: Optional[int]
    sequence: int
    accepts_context: bool

    @property
    def name(self) -> str:
        return getattr(self.fn, "__qualname__", repr(self.fn))

    def distance(self, exc_type: type) -> Optional[int]:
        """Smallest MRO distance from ``exc_type`` to any declared type."""
        distances = [
            d for d in (type_distance(exc_type, t) for t in self.exception_types)
            if d is not None
        ]
        return min(distances) if distances else None

    def invoke(self, exc: BaseException, ctx: FaultContext) -> Any:
        if self.accepts_context:
            return self.fn(exc, ctx)
        return self.fn(exc)


_declaration_counter = itertools.count()


def _infer_exception_types(fn: Callable[..., Any]) -> tuple[type, ...]:
    """Use the annotation of the first parameter when no types are given."""
    params = list(inspect.signature(fn).parameters.values())
    if not params:
        raise TypeError(f"Exception handler {fn!r} must accept the exception")
    hints = typing.get_type_hints(fn)
    hint = hints.get(params[0].name)
    if hint is None:
        raise TypeError(
            f"Exception handler {fn.__qualname__} declares no exception type; "
            "pass types to @exception_handler or annotate the first parameter"
        )
    if typing.get_origin(hint) in (typing.Union, types.UnionType):
        return tuple(typing.get_args(hint))
    return (hint,)


def _accepts_context(fn: Callable[..., Any]) -> bool:
    params = [
        p for p in inspect.signature(fn).parameters.values()
        if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
    ]
    return len(params) >= 2


def declare_handler(
    fn: Callable[..., Any],
    exception_types: Sequence[type] = (),
    status: Optional[int] = None,
) -> DeclaredHandler:
    types_ = tuple(exception_types) or _infer_exception_types(fn)
    for t in types_:
        if not (isinstance(t, type) and issubclass(t, BaseException)):
            raise TypeError(f"{t!r} is not an exception type")
    return DeclaredHandler(
        exception_types=types_,
        fn=fn,
        status=status,
        sequence=next(_declaration_counter),
        accepts_context=_accepts_context(fn),
    )


class HandlerSet:
    """
    Ordered set of declared handlers with an ``exception_handler`` decorator.

    Usage:
        ```python
        handlers = HandlerSet()

        @handlers.exception_handler(InvalidInputFault, status=400)
        def bad_input(exc):
            return ErrorResult("BAD", exc.message)

        @handlers.exception_handler()
        def user_error(exc: UserFault):
            return Respond(400, ErrorResult("USER-EX", exc.message))
        ```
    """

    def __init__(self) -> None:
        self.handlers: list[DeclaredHandler] = []
        self._frozen = False

    def exception_handler(self, *exception_types: type, status: Optional[int] = None):
        def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
            self.add(fn, *exception_types, status=status)
            return fn
        return decorator

    def add(self, fn: Callable[..., Any], *exception_types: type, status: Optional[int] = None) -> None:
        if self._frozen:
            raise RegistryFrozenFault(type(self).__name__)
        self.handlers.append(declare_handler(fn, exception_types, status))

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def best_match(self, exc_type: type) -> Optional[DeclaredHandler]:
        """
        Most specific handler for ``exc_type``.

        Smallest MRO distance wins; equal distances are broken by
        declaration order.
        """
        best: Optional[tuple[int, int, DeclaredHandler]] = None
        for handler in self.handlers:
            distance = handler.distance(exc_type)
            if distance is None:
                continue
            key = (distance, handler.sequence)
            if best is None or key < best[:2]:
                best = (distance, handler.sequence, handler)
        return best[2] if best else None

    def __len__(self) -> int:
        return len(self.handlers)


class ControllerAdvice(HandlerSet):
    """
    Handlers shared across controllers.

    Without restrictions an advice applies to every request. ``base_paths``
    restricts it to request paths under the given prefixes and
    ``controllers`` to the named controllers; when both are given either
    match is enough.
    """

    def __init__(
        self,
        name: str = "advice",
        *,
        base_paths: Iterable[str] = (),
        controllers: Iterable[str] = (),
    ):
        super().__init__()
        self.name = name
        self.base_paths = tuple(p.rstrip("/") for p in base_paths)
        self.controllers = frozenset(controllers)

    def applies_to(self, path: str, controller: Optional[str]) -> bool:
        if not self.base_paths and not self.controllers:
            return True
        if controller is not None and controller in self.controllers:
            return True
        return any(path == p or path.startswith(p + "/") for p in self.base_paths)

    def __repr__(self) -> str:
        return f"ControllerAdvice({self.name!r}, handlers={len(self.handlers)})"


@dataclass
class ScopedHandlerRegistry:
    """
    Registry of declared handlers at controller and advice scope.

    Returns handler sets in resolution order:
    Controller → Advices (registration order)
    """

    _controller: dict[str, HandlerSet] = field(default_factory=dict)
    _advices: list[ControllerAdvice] = field(default_factory=list)
    _frozen: bool = False

    def _check(self) -> None:
        if self._frozen:
            raise RegistryFrozenFault("ScopedHandlerRegistry")

    def controller(self, name: str) -> HandlerSet:
        """Handler set local to controller ``name`` (created on demand)."""
        self._check()
        if name not in self._controller:
            self._controller[name] = HandlerSet()
        return self._controller[name]

    def add_advice(self, advice: ControllerAdvice) -> ControllerAdvice:
        self._check()
        self._advices.append(advice)
        return advice

    def freeze(self) -> None:
        """Freeze the registry and every handler set in it."""
        self._frozen = True
        for handler_set in (*self._controller.values(), *self._advices):
            handler_set.freeze()

    def get_handler_sets(self, *, path: str, controller: Optional[str]) -> list[HandlerSet]:
        sets: list[HandlerSet] = []
        if controller and controller in self._controller:
            sets.append(self._controller[controller])
        sets.extend(a for a in self._advices if a.applies_to(path, controller))
        return sets

    def stats(self) -> dict[str, int]:
        return {"controllers": len(self._controller), "advices": len(self._advices)}
