"""
errorpipe faults - Resolver chain.

The ResolverChain is the runtime fault processor that:
1. Classifies the raised value (status, code, message)
2. Wraps it in a FaultContext
3. Emits the fault for observability
4. Tries registered strategies in priority order until one resolves it

Strategies are isolated from each other: a strategy that raises, times out
or returns garbage is logged and counts as Unresolved. With a timeout set,
synchronous predicates and strategies run in a worker thread so a blocking
one cannot stall the event loop past the bound.
"""

from __future__ import annotations

import asyncio
import inspect
import itertools
import logging
from typing import Any, Callable, Optional

from .classifier import FaultClassifier
from .core import (
    OUTCOME_TYPES,
    FaultContext,
    ResolutionOutcome,
    Severity,
    Unresolved,
)
from .domains import RegistryFrozenFault
from .handlers import FaultHandler, Predicate, ResolverEntry, StrategyFn

DEFAULT_PRIORITY = 500
DEFAULT_STRATEGY_TIMEOUT = 2.0

_LOG_LEVELS = {
    Severity.INFO: logging.INFO,
    Severity.WARN: logging.WARNING,
    Severity.ERROR: logging.ERROR,
    Severity.FATAL: logging.CRITICAL,
}


def _always(ctx: FaultContext) -> bool:
    return True


async def _call(fn: Callable[..., Any], *args: Any, offload: bool = False) -> Any:
    if offload and fn is not _always and not inspect.iscoroutinefunction(fn):
        result = await asyncio.to_thread(fn, *args)
    else:
        result = fn(*args)
    if inspect.isawaitable(result):
        result = await result
    return result


class ResolverChain:
    """
    Ordered chain of resolution strategies.

    Entries are tried in ascending ``(priority, registration order)``. The
    first outcome that is not ``Unresolved`` wins.

    Usage:
        ```python
        chain = ResolverChain(FaultClassifier())
        chain.register_strategy(
            100,
            lambda ctx: isinstance(ctx.exception, ValueError),
            lambda ctx: Empty(400, str(ctx.exception)),
        )
        chain.freeze()

        outcome = await chain.resolve(exc, request)
        ```
    """

    def __init__(
        self,
        classifier: Optional[FaultClassifier] = None,
        *,
        strategy_timeout: Optional[float] = DEFAULT_STRATEGY_TIMEOUT,
        logger: Optional[logging.Logger] = None,
    ):
        self.classifier = classifier or FaultClassifier()
        self.strategy_timeout = strategy_timeout
        self.logger = logger or logging.getLogger("errorpipe.faults")

        self._entries: list[ResolverEntry] = []
        self._sequence = itertools.count()
        self._listeners: list[Callable[[FaultContext], None]] = []
        self._frozen = False

    # ========================================================================
    # Registration
    # ========================================================================

    def register_strategy(
        self,
        priority: int,
        predicate: Optional[Predicate],
        fn: StrategyFn,
        *,
        name: Optional[str] = None,
    ) -> ResolverEntry:
        """
        Register a strategy.

        Args:
            priority: Lower runs first
            predicate: ``ctx -> bool`` pre-filter (None matches every fault)
            fn: ``ctx -> ResolutionOutcome`` (sync or async)
            name: Name used in logs

        Returns:
            The created entry
        """
        if self._frozen:
            raise RegistryFrozenFault("ResolverChain")
        entry = ResolverEntry(
            priority=priority,
            sequence=next(self._sequence),
            predicate=predicate or _always,
            strategy=fn,
            name=name or getattr(fn, "__qualname__", repr(fn)),
        )
        self._entries.append(entry)
        self._entries.sort(key=lambda e: e.sort_key)
        self.logger.debug(f"Registered strategy {entry.name} at priority {priority}")
        return entry

    def register(self, handler: FaultHandler, priority: Optional[int] = None) -> ResolverEntry:
        """Register a FaultHandler (uses its ``priority`` attribute when present)."""
        if priority is None:
            priority = getattr(handler, "priority", DEFAULT_PRIORITY)
        return self.register_strategy(
            priority,
            handler.can_handle,
            handler.handle,
            name=handler.__class__.__name__,
        )

    def on_fault(self, listener: Callable[[FaultContext], None]) -> None:
        """
        Register fault event listener.

        Listeners are called once per fault, before strategies run.
        """
        if self._frozen:
            raise RegistryFrozenFault("ResolverChain")
        self._listeners.append(listener)

    def freeze(self) -> None:
        self._frozen = True
        self.classifier.freeze()

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def entries(self) -> tuple[ResolverEntry, ...]:
        return tuple(self._entries)

    # ========================================================================
    # Resolution
    # ========================================================================

    def capture(self, exc: BaseException, request: Any) -> FaultContext:
        """Classify ``exc`` and wrap it with request context."""
        return FaultContext.capture(exc, request, self.classifier.classify(exc))

    async def resolve(self, exc: BaseException, request: Any) -> ResolutionOutcome:
        """
        Resolve a raised value for ``request``.

        Args:
            exc: Raised value (Fault or plain exception)
            request: RequestRecord it was raised in

        Returns:
            First concrete outcome, or Unresolved
        """
        return await self.resolve_context(self.capture(exc, request))

    async def resolve_context(self, ctx: FaultContext) -> ResolutionOutcome:
        self._emit(ctx)

        for entry in self._entries:
            outcome = await self._run_entry(entry, ctx)
            if not isinstance(outcome, Unresolved):
                self.logger.debug(
                    f"Strategy {entry.name} resolved {ctx.code} "
                    f"as {outcome.__class__.__name__}",
                    extra={"trace_id": ctx.trace_id},
                )
                return outcome

        self.logger.debug(f"No strategy resolved {ctx.code}, propagating")
        return Unresolved()

    async def _run_entry(self, entry: ResolverEntry, ctx: FaultContext) -> ResolutionOutcome:
        try:
            offload = self.strategy_timeout is not None
            matched = await self._bounded(_call(entry.predicate, ctx, offload=offload))
            if not matched:
                self.logger.debug(f"Strategy {entry.name} skipped {ctx.code}")
                return Unresolved()
            outcome = await self._bounded(_call(entry.strategy, ctx, offload=offload))
        except asyncio.TimeoutError:
            self.logger.warning(
                f"Strategy {entry.name} timed out after {self.strategy_timeout}s "
                f"on {ctx.code}; treating as unresolved",
                extra={"trace_id": ctx.trace_id},
            )
            return Unresolved()
        except Exception as e:
            self.logger.warning(
                f"Strategy {entry.name} raised {type(e).__name__} on {ctx.code}: {e}; "
                "treating as unresolved",
                exc_info=True,
                extra={"trace_id": ctx.trace_id},
            )
            return Unresolved()

        if not isinstance(outcome, OUTCOME_TYPES):
            self.logger.warning(
                f"Strategy {entry.name} returned {type(outcome).__name__}, "
                "expected a resolution outcome; treating as unresolved"
            )
            return Unresolved()

        self.logger.debug(
            f"Strategy {entry.name} -> {outcome.__class__.__name__} for {ctx.code}"
        )
        return outcome

    async def _bounded(self, awaitable: Any) -> Any:
        if self.strategy_timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout=self.strategy_timeout)

    def _emit(self, ctx: FaultContext) -> None:
        self.logger.log(
            _LOG_LEVELS[ctx.severity],
            f"[{ctx.kind.value.upper()}] {ctx.code} on {ctx.request.path}: {ctx.exception}",
            extra={"fault_context": ctx.to_dict(), "trace_id": ctx.trace_id},
        )
        for listener in self._listeners:
            try:
                listener(ctx)
            except Exception as e:
                self.logger.error(f"Fault listener raised exception: {e}")

    def get_stats(self) -> dict[str, Any]:
        return {
            "strategies": [(e.priority, e.name) for e in self._entries],
            "listeners": len(self._listeners),
            "frozen": self._frozen,
        }
