"""
errorpipe faults - Default strategies.

Built-in strategies, in chain order:
1. ExceptionHandlerStrategy: declared handlers keyed by exception type
2. ResponseStatusStrategy: faults whose type carries a status annotation
3. SendErrorStrategy: configurable type → status mapping
4. CatchAllStrategy: anything left becomes a 500
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Mapping, Optional

from .core import (
    OUTCOME_TYPES,
    Empty,
    FaultContext,
    ResolutionOutcome,
    Respond,
    Unresolved,
    type_distance,
)
from .classifier import message_of
from .engine import DEFAULT_PRIORITY
from .handlers import FaultHandler, ScopedHandlerRegistry
from ..messages import MessageSource

EXCEPTION_HANDLER_PRIORITY = 100
RESPONSE_STATUS_PRIORITY = 200
SEND_ERROR_PRIORITY = DEFAULT_PRIORITY
CATCH_ALL_PRIORITY = 1000

logger = logging.getLogger("errorpipe.faults")


# ============================================================================
# 1. ExceptionHandlerStrategy - declared handlers
# ============================================================================

class ExceptionHandlerStrategy(FaultHandler):
    """
    Resolve faults with declared exception handlers.

    Handler sets are searched controller first, then advices in
    registration order. Inside a set the most specific declared type wins.

    Synchronous handlers run in a worker thread, so the chain's strategy
    timeout bounds them as well.

    A handler may return:
    - a ResolutionOutcome (used as-is)
    - an ErrorResult, dict, list or str (responded with the declared status,
      or the classified status when none is declared)
    - a TransportResponse (responded verbatim)
    - None (empty body with the declared/classified status)

    Usage:
        ```python
        registry = ScopedHandlerRegistry()
        advice = registry.add_advice(ControllerAdvice("api", base_paths=["/api"]))

        @advice.exception_handler(InvalidInputFault, status=400)
        def illegal(exc):
            return ErrorResult("BAD", exc.message)

        chain.register(ExceptionHandlerStrategy(registry))
        ```
    """

    priority = EXCEPTION_HANDLER_PRIORITY

    def __init__(self, registry: ScopedHandlerRegistry):
        self.registry = registry

    async def handle(self, ctx: FaultContext) -> ResolutionOutcome:
        exc_type = type(ctx.exception)
        for handler_set in self.registry.get_handler_sets(
            path=ctx.request.path, controller=ctx.controller
        ):
            declared = handler_set.best_match(exc_type)
            if declared is None:
                continue

            logger.debug(f"[exceptionHandler] {declared.name} handles {exc_type.__name__}")
            if inspect.iscoroutinefunction(declared.fn):
                result = await declared.invoke(ctx.exception, ctx)
            else:
                result = await asyncio.to_thread(declared.invoke, ctx.exception, ctx)
                if inspect.isawaitable(result):
                    result = await result
            return self._to_outcome(result, declared.status or ctx.classification.status)

        return Unresolved()

    @staticmethod
    def _to_outcome(result: Any, status: int) -> ResolutionOutcome:
        from ..response import TransportResponse

        if isinstance(result, OUTCOME_TYPES):
            return result
        if isinstance(result, TransportResponse):
            return Respond(result.status_code, result.body, dict(result.headers))
        return Respond(status, result)


# ============================================================================
# 2. ResponseStatusStrategy - status-annotated faults
# ============================================================================

class ResponseStatusStrategy(FaultHandler):
    """
    Resolve faults whose type (or an ancestor) declares a status.

    Produces a send-error ``Empty``: the boundary renders the error page for
    the declared status. A declared reason is resolved as a message key.
    """

    priority = RESPONSE_STATUS_PRIORITY

    def __init__(self, messages: Optional[MessageSource] = None):
        self.messages = messages or MessageSource()

    def can_handle(self, ctx: FaultContext) -> bool:
        return ctx.classification.annotated

    async def handle(self, ctx: FaultContext) -> ResolutionOutcome:
        classification = ctx.classification
        if classification.is_server_error:
            return Empty(classification.status, classification.message)
        if classification.reason:
            message = self.messages.resolve(
                classification.reason,
                default=classification.message or classification.reason,
                locale=ctx.request.locale,
            )
        else:
            message = classification.message
        return Empty(classification.status, message)


# ============================================================================
# 3. SendErrorStrategy - configurable type → status mapping
# ============================================================================

class SendErrorStrategy(FaultHandler):
    """
    Map exception types to a status and send an error for it.

    Usage:
        ```python
        chain.register(SendErrorStrategy({ValueError: 400}))
        ```
    """

    priority = SEND_ERROR_PRIORITY

    def __init__(self, mapping: Mapping[type, int]):
        self.mapping = dict(mapping)

    def _status_for(self, exc_type: type) -> Optional[int]:
        best: Optional[tuple[int, int]] = None
        for target, status in self.mapping.items():
            distance = type_distance(exc_type, target)
            if distance is not None and (best is None or distance < best[0]):
                best = (distance, status)
        return best[1] if best else None

    def can_handle(self, ctx: FaultContext) -> bool:
        return self._status_for(type(ctx.exception)) is not None

    async def handle(self, ctx: FaultContext) -> ResolutionOutcome:
        status = self._status_for(type(ctx.exception))
        if status is None:
            return Unresolved()
        logger.info(f"{type(ctx.exception).__name__} resolved to {status}")
        message = message_of(ctx.exception) if status < 500 else None
        return Empty(status, message)


# ============================================================================
# 4. CatchAllStrategy - generic 500
# ============================================================================

class CatchAllStrategy(FaultHandler):
    """
    Resolve anything that reached the end of the chain as a 500.

    The outcome counts as propagated, so exception-type error routes still
    apply to it.
    """

    priority = CATCH_ALL_PRIORITY

    def __init__(self, generic_message: str):
        self.generic_message = generic_message

    async def handle(self, ctx: FaultContext) -> ResolutionOutcome:
        return Empty(500, self.generic_message, propagated=True)


__all__ = [
    "EXCEPTION_HANDLER_PRIORITY",
    "RESPONSE_STATUS_PRIORITY",
    "SEND_ERROR_PRIORITY",
    "CATCH_ALL_PRIORITY",
    "ExceptionHandlerStrategy",
    "ResponseStatusStrategy",
    "SendErrorStrategy",
    "CatchAllStrategy",
]
