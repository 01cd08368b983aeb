"""
Dispatch gating - which cross-cutting logic runs for which request.

Two kinds of cross-cutting logic wrap request handlers:

- Filters sit outside the dispatcher. They tell client requests from
  internal ones by the request origin: a filter skips internal error
  replays unless it lists them in its dispatch types.
- Interceptors sit inside the dispatcher and ignore the origin. They are
  selected by path instead, and the internal error routes are excluded by
  default.
"""

from __future__ import annotations

import functools
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence

from .request import RequestOrigin, RequestRecord

logger = logging.getLogger("errorpipe.dispatch")

NextHandler = Callable[[RequestRecord], Awaitable[Any]]
Filter = Callable[[RequestRecord, NextHandler], Awaitable[Any]]


# ============================================================================
# Path patterns
# ============================================================================

@functools.lru_cache(maxsize=256)
def _ant_regex(pattern: str) -> re.Pattern[str]:
    suffix = ""
    if pattern.endswith("/**"):
        pattern, suffix = pattern[:-3], "(?:/.*)?"
    out = []
    i = 0
    while i < len(pattern):
        if pattern.startswith("**", i):
            out.append(".*")
            i += 2
        elif pattern[i] == "*":
            out.append("[^/]*")
            i += 1
        elif pattern[i] == "?":
            out.append("[^/]")
            i += 1
        else:
            out.append(re.escape(pattern[i]))
            i += 1
    return re.compile("^" + "".join(out) + suffix + "$")


def match_ant_pattern(pattern: str, path: str) -> bool:
    """
    Ant-style matching as used for interceptor paths.

    ``?`` matches one character, ``*`` anything within a segment and ``**``
    any number of segments (``/a/**`` also matches ``/a``).
    """
    return _ant_regex(pattern).match(path) is not None


def match_url_pattern(pattern: str, path: str) -> bool:
    """
    Servlet-style URL pattern matching as used for filters.

    ``/*`` matches everything, ``/prefix/*`` a path prefix, ``*.ext`` an
    extension; anything else is an exact match.
    """
    if pattern in ("/*", "/"):
        return True
    if pattern.endswith("/*"):
        prefix = pattern[:-2]
        return path == prefix or path.startswith(prefix + "/")
    if pattern.startswith("*."):
        return path.endswith(pattern[1:])
    return path == pattern


# ============================================================================
# Registrations
# ============================================================================

class Interceptor:
    """
    Base class for interceptors.

    ``pre_handle`` returning False stops the request; the interceptor is
    then responsible for the response it returns from ``rejected``.
    """

    async def pre_handle(self, request: RequestRecord) -> bool:
        return True

    async def post_handle(self, request: RequestRecord, response: Any) -> None:
        pass

    async def after_completion(
        self, request: RequestRecord, error: Optional[BaseException]
    ) -> None:
        pass

    def rejected(self, request: RequestRecord) -> Any:
        from .response import TransportResponse
        return TransportResponse.empty(200)


@dataclass(frozen=True)
class FilterRegistration:
    """Filter with its order, URL patterns and dispatch types."""
    filter: Filter
    order: int = 0
    url_patterns: tuple[str, ...] = ("/*",)
    dispatch_types: frozenset[RequestOrigin] = frozenset({RequestOrigin.CLIENT_REQUEST})
    name: str = ""

    def matches_path(self, path: str) -> bool:
        return any(match_url_pattern(p, path) for p in self.url_patterns)


@dataclass(frozen=True)
class InterceptorRegistration:
    """Interceptor with its order and include/exclude path patterns."""
    interceptor: Interceptor
    order: int = 0
    include: tuple[str, ...] = ("/**",)
    exclude: tuple[str, ...] = ()
    exclude_error_routes: bool = True
    name: str = ""


@dataclass(frozen=True)
class DispatchGate:
    """
    Decides whether cross-cutting logic runs for a request.

    ``error_paths`` are the internal error route patterns interceptors skip
    unless their registration turns ``exclude_error_routes`` off.
    """

    error_paths: tuple[str, ...] = ("/error", "/error-page/**")

    def should_run_cross_cutting(self, origin: RequestOrigin) -> bool:
        """False for internal error replays, True for every other origin."""
        return origin is not RequestOrigin.INTERNAL_ERROR_REPLAY

    def admits_filter(self, registration: FilterRegistration, request: RequestRecord) -> bool:
        """
        Path must match. Origins passing ``should_run_cross_cutting`` are
        admitted; replays pass only for filters listing them in their
        dispatch types.
        """
        if not registration.matches_path(request.path):
            return False
        if self.should_run_cross_cutting(request.origin):
            return True
        return request.origin in registration.dispatch_types

    def admits_interceptor(
        self, registration: InterceptorRegistration, request: RequestRecord
    ) -> bool:
        path = request.path
        if not any(match_ant_pattern(p, path) for p in registration.include):
            return False
        excluded = registration.exclude
        if registration.exclude_error_routes:
            excluded = excluded + self.error_paths
        return not any(match_ant_pattern(p, path) for p in excluded)


# ============================================================================
# Cross-cutting registry
# ============================================================================

@dataclass
class CrossCuttingRegistry:
    """Filters and interceptors, sorted by order (then registration order)."""

    gate: DispatchGate = field(default_factory=DispatchGate)
    filters: list[FilterRegistration] = field(default_factory=list)
    interceptors: list[InterceptorRegistration] = field(default_factory=list)

    def add_filter(
        self,
        filter: Filter,
        *,
        order: int = 0,
        url_patterns: Sequence[str] = ("/*",),
        dispatch_types: Iterable[RequestOrigin] = (RequestOrigin.CLIENT_REQUEST,),
        name: Optional[str] = None,
    ) -> FilterRegistration:
        registration = FilterRegistration(
            filter=filter,
            order=order,
            url_patterns=tuple(url_patterns),
            dispatch_types=frozenset(dispatch_types),
            name=name or _name_of(filter),
        )
        self.filters.append(registration)
        self.filters.sort(key=lambda r: r.order)
        return registration

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
        registration = InterceptorRegistration(
            interceptor=interceptor,
            order=order,
            include=tuple(include),
            exclude=tuple(exclude),
            exclude_error_routes=exclude_error_routes,
            name=name or _name_of(interceptor),
        )
        self.interceptors.append(registration)
        self.interceptors.sort(key=lambda r: r.order)
        return registration

    def filters_for(self, request: RequestRecord) -> list[FilterRegistration]:
        selected = [r for r in self.filters if self.gate.admits_filter(r, request)]
        skipped = len(self.filters) - len(selected)
        if skipped:
            logger.debug(
                f"{skipped} filter(s) skipped for {request.path} "
                f"[{request.origin.value}]"
            )
        return selected

    def interceptors_for(self, request: RequestRecord) -> list[InterceptorRegistration]:
        return [r for r in self.interceptors if self.gate.admits_interceptor(r, request)]


def _name_of(obj: Any) -> str:
    return getattr(obj, "__name__", None) or obj.__class__.__name__
