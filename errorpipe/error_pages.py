"""
Error page routes - where an error is re-dispatched to.

Routes are keyed by:
- exact status code (``404``)
- exception type (``RuntimeError``; subtypes match their nearest ancestor)
- status class wildcard (``"4xx"``, ``"5xx"``)
- the default key ``"error"``

Lookup precedence: exact status > exception type > status class > default.
The default route always exists, so every lookup yields a route.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Optional, Union

from .faults.core import type_distance
from .faults.domains import ConfigFault, RegistryFrozenFault

DEFAULT_ERROR_PATH = "/error"
DEFAULT_KEY = "error"

MatchKey = Union[int, type, str]

_WILDCARD = re.compile(r"^([1-5])xx$", re.IGNORECASE)

logger = logging.getLogger("errorpipe.error_pages")


@dataclass(frozen=True, slots=True)
class ErrorPageRoute:
    """Mapping from a match key to an internal route path."""
    match_key: MatchKey
    path: str

    @property
    def kind(self) -> str:
        if isinstance(self.match_key, int):
            return "status"
        if isinstance(self.match_key, type):
            return "exception"
        if self.match_key == DEFAULT_KEY:
            return "default"
        return "series"

    def describe(self) -> str:
        if isinstance(self.match_key, type):
            return f"{self.match_key.__module__}.{self.match_key.__qualname__}"
        return str(self.match_key)


def normalize_key(key: MatchKey) -> MatchKey:
    """
    Validate a match key.

    Digit strings become status codes, wildcards are lower-cased.
    """
    if isinstance(key, bool):
        raise ConfigFault(f"Invalid error route key: {key!r}")
    if isinstance(key, int):
        if not 100 <= key <= 599:
            raise ConfigFault(f"Invalid error route status: {key}")
        return key
    if isinstance(key, type):
        if not issubclass(key, BaseException):
            raise ConfigFault(f"Error route type {key!r} is not an exception type")
        return key
    if isinstance(key, str):
        if key.isdigit():
            return normalize_key(int(key))
        if key == DEFAULT_KEY:
            return key
        if _WILDCARD.match(key):
            return key.lower()
    raise ConfigFault(f"Invalid error route key: {key!r}")


class ErrorPageRegistry:
    """
    Process-wide error route table.

    Built at startup, frozen before the first request and read-only
    afterwards.

    Usage:
        ```python
        routes = ErrorPageRegistry()
        routes.register(404, "/error-page/404")
        routes.register("5xx", "/error-page/5xx")
        routes.register(RuntimeError, "/error-page/500")
        routes.freeze()

        routes.lookup(404).path  # "/error-page/404"
        ```
    """

    def __init__(self, default_path: str = DEFAULT_ERROR_PATH):
        self._status: dict[int, ErrorPageRoute] = {}
        self._series: dict[str, ErrorPageRoute] = {}
        self._exceptions: list[ErrorPageRoute] = []
        self._default = ErrorPageRoute(DEFAULT_KEY, default_path)
        self._frozen = False

    def register(self, match_key: MatchKey, path: str) -> ErrorPageRoute:
        if self._frozen:
            raise RegistryFrozenFault("ErrorPageRegistry")
        if not path.startswith("/"):
            raise ConfigFault(f"Error route path must start with '/': {path!r}")

        key = normalize_key(match_key)
        route = ErrorPageRoute(key, path)
        if isinstance(key, int):
            self._status[key] = route
        elif isinstance(key, type):
            self._exceptions = [r for r in self._exceptions if r.match_key is not key]
            self._exceptions.append(route)
        elif key == DEFAULT_KEY:
            self._default = route
        else:
            self._series[key] = route

        logger.debug(f"Registered error route {route.describe()} -> {path}")
        return route

    def freeze(self) -> None:
        self._frozen = True

    @property
    def default(self) -> ErrorPageRoute:
        return self._default

    def lookup(self, status: int, exc: Optional[BaseException] = None) -> ErrorPageRoute:
        """
        Route for an error with ``status`` raised as ``exc``.

        Args:
            status: Classified HTTP status
            exc: Raised value, if any (enables exception-type routes)

        Returns:
            The most specific route; the default route when nothing matches
        """
        route = self._status.get(status)
        if route is not None:
            return route

        if exc is not None:
            route = self._lookup_exception(type(exc))
            if route is not None:
                return route

        route = self._series.get(f"{status // 100}xx")
        if route is not None:
            return route

        return self._default

    def _lookup_exception(self, exc_type: type) -> Optional[ErrorPageRoute]:
        best: Optional[tuple[int, ErrorPageRoute]] = None
        for route in self._exceptions:
            distance = type_distance(exc_type, route.match_key)
            if distance is not None and (best is None or distance < best[0]):
                best = (distance, route)
        return best[1] if best else None

    def routes(self) -> list[ErrorPageRoute]:
        """All routes in precedence order (default last)."""
        return [
            *sorted(self._status.values(), key=lambda r: r.match_key),
            *self._exceptions,
            *sorted(self._series.values(), key=lambda r: r.match_key),
            self._default,
        ]

    def paths(self) -> set[str]:
        return {route.path for route in self.routes()}
