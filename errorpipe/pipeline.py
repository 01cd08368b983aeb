"""
Error pipeline - transport boundary and error-page replay.

Request flow:

    filters (gated by origin) → dispatcher → interceptors (gated by path)
        → handler
        ↓ fault
    ResolverChain → ResponseComposer → TransportResponse | Redispatch

``handle`` performs one pass. ``dispatch`` acts as the container: it runs
``handle`` and executes a resulting Redispatch exactly once as an internal
error replay. Anything going wrong during the replay ends in the minimal
fallback response; the chain never sees a replayed request.
"""

from __future__ import annotations

import functools
import inspect
import logging
import re
from typing import Any, Callable, Iterable, Optional, Sequence

from .composer import Composed, ResponseComposer
from .config import PipelineConfig, resolve_type
from .dispatch import (
    CrossCuttingRegistry,
    DispatchGate,
    Filter,
    FilterRegistration,
    Interceptor,
    InterceptorRegistration,
    NextHandler,
)
from .error_controller import ErrorPageController
from .error_pages import DEFAULT_KEY, ErrorPageRegistry, ErrorPageRoute, MatchKey
from .faults.classifier import FaultClassifier
from .faults.core import FaultContext, Respond, Unresolved
from .faults.default_handlers import (
    CatchAllStrategy,
    ExceptionHandlerStrategy,
    ResponseStatusStrategy,
    SendErrorStrategy,
)
from .faults.domains import RegistryFrozenFault, UnhandledPropagation
from .faults.engine import ResolverChain
from .faults.handlers import (
    ControllerAdvice,
    FaultHandler,
    HandlerSet,
    Predicate,
    ResolverEntry,
    ScopedHandlerRegistry,
    StrategyFn,
)
from .messages import MessageSource
from .request import ERROR_EXCEPTION, RequestOrigin, RequestRecord
from .response import Redispatch, TransportResponse
from .views import ErrorViewResolver

logger = logging.getLogger("errorpipe.pipeline")

Handler = Callable[[RequestRecord], Any]

_SERIES = re.compile(r"^[1-5]xx$", re.IGNORECASE)


async def _call(handler: Handler, request: RequestRecord) -> Any:
    result = handler(request)
    if inspect.isawaitable(result):
        result = await result
    return result


class ErrorPipeline:
    """
    Error resolution pipeline.

    Built at startup from a PipelineConfig; every table is frozen on the
    first request (or by an explicit ``freeze()``).

    Usage:
        ```python
        pipeline = ErrorPipeline(PipelineConfig(error_routes={"404": "/error-page/404"}))

        api = pipeline.advice("api", base_paths=["/api"])

        @api.exception_handler(InvalidInputFault, status=400)
        def bad_input(exc):
            return ErrorResult("BAD", exc.message)

        pipeline.add_filter(LogFilter())
        pipeline.add_interceptor(LogInterceptor(), exclude=["/static/**"])

        response = await pipeline.dispatch(RequestRecord("/api/members/bad"), handler)
        ```
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        *,
        messages: Optional[MessageSource] = None,
        views: Optional[ErrorViewResolver] = None,
    ):
        self.config = config or PipelineConfig()
        cfg = self.config

        self.classifier = FaultClassifier(generic_message=cfg.generic_message)
        self.chain = ResolverChain(self.classifier, strategy_timeout=cfg.strategy_timeout)
        self.handlers = ScopedHandlerRegistry()
        self.routes = ErrorPageRegistry(cfg.error_path)
        self.cross_cutting = CrossCuttingRegistry(DispatchGate(cfg.error_route_patterns))

        if messages is None:
            messages = MessageSource.from_file(cfg.messages_file) if cfg.messages_file else MessageSource()
        self.messages = messages
        self.views = views or ErrorViewResolver(
            template_dirs=cfg.template_dirs,
            static_dirs=cfg.static_dirs,
        )
        self.composer = ResponseComposer(
            self.routes,
            self.classifier,
            api_path_prefixes=cfg.api_path_prefixes,
        )
        self.error_controller = ErrorPageController(
            self.views,
            default_path=cfg.error_path,
            api_path_prefixes=cfg.api_path_prefixes,
            include_exception=cfg.include_exception,
        )

        self._error_handlers: dict[str, Handler] = {}
        self._frozen = False

        self._apply_config(cfg)
        self._install_default_strategies(cfg)

    # ========================================================================
    # Startup
    # ========================================================================

    def _apply_config(self, cfg: PipelineConfig) -> None:
        for dotted, declaration in cfg.statuses.items():
            if isinstance(declaration, int):
                declaration = {"status": declaration}
            self.classifier.declare(
                resolve_type(dotted),
                int(declaration["status"]),
                code=declaration.get("code"),
                reason=declaration.get("reason"),
            )

        for key, path in cfg.error_routes.items():
            self.register_error_route(_route_key(key), path)

    def _install_default_strategies(self, cfg: PipelineConfig) -> None:
        self.chain.register(ExceptionHandlerStrategy(self.handlers))
        self.chain.register(ResponseStatusStrategy(self.messages))
        if cfg.send_error:
            mapping = {resolve_type(dotted): int(status) for dotted, status in cfg.send_error.items()}
            self.chain.register(SendErrorStrategy(mapping))
        if cfg.catch_all:
            self.chain.register(CatchAllStrategy(cfg.generic_message))

    def _check(self, what: str) -> None:
        if self._frozen:
            raise RegistryFrozenFault(what)

    def freeze(self) -> None:
        """Freeze every table. Called automatically on the first request."""
        if self._frozen:
            return
        self.chain.freeze()
        self.routes.freeze()
        self.handlers.freeze()
        self._frozen = True
        logger.info(
            f"Error pipeline frozen: {len(self.chain.entries)} strategies, "
            f"{len(self.routes.routes())} error routes"
        )

    @property
    def frozen(self) -> bool:
        return self._frozen

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
        return self.chain.register_strategy(priority, predicate, fn, name=name)

    def register_handler(self, handler: FaultHandler, priority: Optional[int] = None) -> ResolverEntry:
        return self.chain.register(handler, priority)

    def register_error_route(self, match_key: MatchKey, path: str) -> ErrorPageRoute:
        return self.routes.register(match_key, path)

    def register_error_handler(self, path: str, handler: Handler) -> None:
        """Serve replays of error route ``path`` with ``handler``."""
        self._check("ErrorPipeline")
        self._error_handlers[path] = handler

    def declare_status(
        self,
        exc_type: type,
        status: int,
        *,
        code: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> None:
        self.classifier.declare(exc_type, status, code=code, reason=reason)

    def advice(
        self,
        name: str = "advice",
        *,
        base_paths: Iterable[str] = (),
        controllers: Iterable[str] = (),
    ) -> ControllerAdvice:
        return self.handlers.add_advice(
            ControllerAdvice(name, base_paths=base_paths, controllers=controllers)
        )

    def controller(self, name: str) -> HandlerSet:
        return self.handlers.controller(name)

    def add_filter(
        self,
        filter: Filter,
        *,
        order: int = 0,
        url_patterns: Sequence[str] = ("/*",),
        dispatch_types: Iterable[RequestOrigin] = (RequestOrigin.CLIENT_REQUEST,),
        name: Optional[str] = None,
    ) -> FilterRegistration:
        self._check("ErrorPipeline")
        return self.cross_cutting.add_filter(
            filter,
            order=order,
            url_patterns=url_patterns,
            dispatch_types=dispatch_types,
            name=name,
        )

    def add_interceptor(
        self,
        interceptor: Interceptor,
        *,
        order: int = 0,
        include: Sequence[str] = ("/**",),
        exclude: Sequence[str] = (),
        exclude_error_routes: bool = True,
        name: Optional[str] = None,
    ) -> InterceptorRegistration:
        self._check("ErrorPipeline")
        return self.cross_cutting.add_interceptor(
            interceptor,
            order=order,
            include=include,
            exclude=exclude,
            exclude_error_routes=exclude_error_routes,
            name=name,
        )

    def on_fault(self, listener: Callable[[FaultContext], None]) -> None:
        self.chain.on_fault(listener)

    def error_handler_for(self, path: str) -> Handler:
        return self._error_handlers.get(path, self.error_controller)

    # ========================================================================
    # Request handling
    # ========================================================================

    async def handle(self, request: RequestRecord, handler: Handler) -> Composed:
        """
        Run one request through filters, interceptors and ``handler``.

        Args:
            request: Request record from the transport
            handler: ``request -> result`` (sync or async)

        Returns:
            TransportResponse, or Redispatch to an internal error route

        Raises:
            Exception: Only for replayed requests; faults raised while
                handling a replay are never resolved here
        """
        self.freeze()

        endpoint: NextHandler = functools.partial(self._invoke, handler=handler)
        for registration in reversed(self.cross_cutting.filters_for(request)):
            endpoint = _wrap(registration.filter, endpoint)

        try:
            result = await endpoint(request)
        except Exception as exc:
            if request.is_replay:
                raise
            logger.debug(f"{type(exc).__name__} reached the boundary for {request.path}")
            return self.composer.compose(Unresolved(), exc=exc, request=request)

        return self._finish(result, request)

    async def _invoke(self, request: RequestRecord, handler: Handler) -> Any:
        """Dispatcher: interceptors around the handler, then fault resolution."""
        applied: list[InterceptorRegistration] = []
        error: Optional[BaseException] = None
        try:
            for registration in self.cross_cutting.interceptors_for(request):
                if not await registration.interceptor.pre_handle(request):
                    logger.debug(f"{registration.name} rejected {request.path}")
                    return registration.interceptor.rejected(request)
                applied.append(registration)

            try:
                result = await _call(handler, request)
            except Exception as exc:
                error = exc
                if request.is_replay:
                    raise
                outcome = await self.chain.resolve(exc, request)
                if isinstance(outcome, Unresolved):
                    raise
                return self.composer.compose(outcome, exc=exc, request=request)

            for registration in reversed(applied):
                await registration.interceptor.post_handle(request, result)
            return result
        finally:
            for registration in reversed(applied):
                try:
                    await registration.interceptor.after_completion(request, error)
                except Exception as e:
                    logger.error(f"{registration.name}.after_completion raised: {e}")

    def _finish(self, result: Any, request: RequestRecord) -> Composed:
        if isinstance(result, Redispatch):
            return result
        if isinstance(result, TransportResponse):
            signal = result.error
            if signal is None or signal.status < 400:
                return result
            logger.debug(f"send_error({signal.status}) on {request.path}")
            return self.composer.redispatch(signal.status, request=request, message=signal.message)
        return self.composer.compose(Respond(200, result), request=request)

    async def dispatch(self, request: RequestRecord, handler: Handler) -> TransportResponse:
        """
        Handle ``request`` and execute at most one error-page replay.

        Args:
            request: Request record from the transport
            handler: Business handler for ``request``

        Returns:
            The final TransportResponse
        """
        try:
            result = await self.handle(request, handler)
        except Exception as exc:
            return self._fallback(exc, "fault while handling a replayed request")

        if isinstance(result, TransportResponse):
            return result
        if request.is_replay:
            return self._fallback(result.attributes.get(ERROR_EXCEPTION), "replay requested a replay")

        replay = request.replay(result.path, result.attributes)
        logger.info(f"Replaying {request.path} as {result.status} error on {result.path}")
        try:
            final = await self.handle(replay, self.error_handler_for(result.path))
        except Exception as exc:
            return self._fallback(exc, "fault while rendering the error page")

        if isinstance(final, Redispatch):
            return self._fallback(final.attributes.get(ERROR_EXCEPTION), "error page requested a replay")
        return final

    def _fallback(self, original: Optional[BaseException], reason: str) -> TransportResponse:
        fault = UnhandledPropagation(original, reason)
        logger.critical(
            f"[{fault.code}] {fault.message}; answering with the fallback response",
            exc_info=original,
        )
        return TransportResponse.fallback()

    def get_stats(self) -> dict[str, Any]:
        return {
            "frozen": self._frozen,
            "chain": self.chain.get_stats(),
            "handlers": self.handlers.stats(),
            "routes": [(r.describe(), r.path) for r in self.routes.routes()],
            "filters": [r.name for r in self.cross_cutting.filters],
            "interceptors": [r.name for r in self.cross_cutting.interceptors],
            "error_handlers": sorted(self._error_handlers),
        }


def _wrap(filter: Filter, next_handler: NextHandler) -> NextHandler:
    async def run(request: RequestRecord) -> Any:
        return await filter(request, next_handler)
    return run


def _route_key(key: Any) -> MatchKey:
    """Config route keys: status codes, wildcards, ``error`` or dotted types."""
    if isinstance(key, int):
        return key
    key = str(key)
    if key.isdigit() or key == DEFAULT_KEY or _SERIES.match(key):
        return key
    return resolve_type(key)
