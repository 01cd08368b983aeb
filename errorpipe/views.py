"""
Error views - selection and rendering of error pages.

Dynamic views are jinja2 templates; static views are plain HTML files.
For the same view key a template always wins over a static file.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional

from jinja2 import (
    BaseLoader,
    ChoiceLoader,
    DictLoader,
    Environment,
    FileSystemLoader,
    TemplateNotFound,
    select_autoescape,
)

from .faults.domains import ViewNotFoundFault

logger = logging.getLogger("errorpipe.views")

FALLBACK_VIEW = "error"

BUILTIN_PAGE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{{ status }} {{ error }}</title></head>
<body>
<h1>{{ status }} {{ error }}</h1>
<p>{{ message }}</p>
<p><small>{{ path }} &middot; {{ timestamp }}</small></p>
</body>
</html>
"""


@dataclass(frozen=True, slots=True)
class View:
    """A resolved error view."""
    name: str
    source: str  # "template", "static" or "builtin"
    location: Optional[Path] = None
    content: Optional[str] = None


class ErrorViewResolver:
    """
    Selects and renders error views.

    Selection order for a replayed error request:
    1. explicit view id (must exist)
    2. view named after the error route (``/error-page/404`` → ``error-page/404``)
    3. ``error/<status>``
    4. ``error/<N>xx``
    5. ``error``
    6. built-in minimal page

    Each key is looked up as a template first, then as a static file.

    Args:
        template_dirs: Directories searched for ``<key>.html`` templates
        static_dirs: Directories searched for ``<key>.html`` static pages
        templates: In-memory templates (``{"error/500.html": "..."}``)
        static_pages: In-memory static pages
    """

    def __init__(
        self,
        *,
        template_dirs: Iterable[str | Path] = (),
        static_dirs: Iterable[str | Path] = (),
        templates: Optional[Mapping[str, str]] = None,
        static_pages: Optional[Mapping[str, str]] = None,
        suffix: str = ".html",
    ):
        self.suffix = suffix
        self.static_dirs = [Path(d) for d in static_dirs]
        self.static_pages = dict(static_pages or {})

        loaders: list[BaseLoader] = []
        if templates:
            loaders.append(DictLoader(dict(templates)))
        dirs = [str(d) for d in template_dirs]
        if dirs:
            loaders.append(FileSystemLoader(dirs))

        self.env = Environment(
            loader=ChoiceLoader(loaders),
            autoescape=select_autoescape(["html", "htm", "xml"], default_for_string=True),
        )
        self._builtin = self.env.from_string(BUILTIN_PAGE)

    # ========================================================================
    # Lookup
    # ========================================================================

    def find(self, key: str) -> Optional[View]:
        """Find ``key`` as a template, then as a static page."""
        name = f"{key}{self.suffix}"
        try:
            self.env.get_template(name)
            return View(name=key, source="template")
        except TemplateNotFound:
            pass

        if name in self.static_pages:
            return View(name=key, source="static", content=self.static_pages[name])
        for directory in self.static_dirs:
            candidate = directory / name
            if candidate.is_file():
                return View(name=key, source="static", location=candidate)
        return None

    def candidates(self, status: int, route_path: Optional[str], default_path: str) -> list[str]:
        keys: list[str] = []
        if route_path and route_path != default_path:
            keys.append(route_path.strip("/"))
        keys.append(f"error/{status}")
        keys.append(f"error/{status // 100}xx")
        keys.append(FALLBACK_VIEW)
        return keys

    def resolve(
        self,
        status: int,
        *,
        route_path: Optional[str] = None,
        default_path: str = "/error",
        explicit: Optional[str] = None,
    ) -> View:
        if explicit:
            view = self.find(explicit)
            if view is None:
                raise ViewNotFoundFault(explicit)
            return view

        for key in self.candidates(status, route_path, default_path):
            view = self.find(key)
            if view is not None:
                logger.debug(f"Error view for {status} ({route_path}): {key} [{view.source}]")
                return view

        return View(name="builtin", source="builtin")

    # ========================================================================
    # Rendering
    # ========================================================================

    def render(self, view: View, model: Mapping[str, Any]) -> str:
        if view.source == "template":
            return self.env.get_template(f"{view.name}{self.suffix}").render(**model)
        if view.source == "static":
            if view.content is not None:
                return view.content
            return view.location.read_text(encoding="utf-8")
        return self._builtin.render(**model)
