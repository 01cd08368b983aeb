"""
Message source - localized error messages.

Status annotations may name a message key as their reason
(``@response_status(400, reason="error.bad")``); the key is looked up here.

Bundles are YAML mappings, either flat (``error.bad: ...``) or nested
(``error: {bad: ...}``). ``messages.yaml`` is the base bundle and
``messages_<locale>.yaml`` next to it overrides it for that locale.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from .faults.domains import ConfigFault

logger = logging.getLogger("errorpipe.messages")


def _flatten(data: Mapping[str, Any], prefix: str = "") -> dict[str, str]:
    flat: dict[str, str] = {}
    for key, value in data.items():
        full = f"{prefix}.{key}" if prefix else str(key)
        if isinstance(value, Mapping):
            flat.update(_flatten(value, full))
        else:
            flat[full] = str(value)
    return flat


class MessageSource:
    """
    Key → message lookup with per-locale overrides.

    Example:
        ```python
        messages = MessageSource({"error.bad": "bad request"},
                                 locales={"ko": {"error.bad": "잘못된 요청 오류"}})
        messages.resolve("error.bad", locale="ko-KR")  # "잘못된 요청 오류"
        ```
    """

    def __init__(
        self,
        messages: Optional[Mapping[str, Any]] = None,
        *,
        locales: Optional[Mapping[str, Mapping[str, Any]]] = None,
    ):
        self._base = _flatten(messages or {})
        self._locales = {
            loc.lower().replace("_", "-"): _flatten(bundle) for loc, bundle in (locales or {}).items()
        }

    @classmethod
    def from_file(cls, path: str | Path) -> "MessageSource":
        """Load ``path`` and any ``<stem>_<locale><suffix>`` siblings."""
        base_path = Path(path)
        if not base_path.exists():
            raise ConfigFault(f"Message bundle '{base_path}' does not exist")

        base = cls._load_yaml(base_path)
        locales: dict[str, Mapping[str, Any]] = {}
        for sibling in sorted(base_path.parent.glob(f"{base_path.stem}_*{base_path.suffix}")):
            locale = sibling.stem[len(base_path.stem) + 1:]
            locales[locale] = cls._load_yaml(sibling)
            logger.debug(f"Loaded message bundle for locale '{locale}' from {sibling}")
        return cls(base, locales=locales)

    @staticmethod
    def _load_yaml(path: Path) -> Mapping[str, Any]:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
        if data is None:
            return {}
        if not isinstance(data, Mapping):
            raise ConfigFault(f"Message bundle '{path}' must be a mapping")
        return data

    def resolve(
        self,
        key: str,
        default: Optional[str] = None,
        *,
        locale: Optional[str] = None,
    ) -> str:
        """
        Resolve ``key``.

        Lookup order: exact locale (``ko-kr``), language (``ko``), base
        bundle, ``default``, and finally the key itself.
        """
        if locale:
            loc = locale.lower().replace("_", "-")
            for candidate in (loc, loc.split("-")[0]):
                bundle = self._locales.get(candidate)
                if bundle and key in bundle:
                    return bundle[key]
        if key in self._base:
            return self._base[key]
        return default if default is not None else key

    def __contains__(self, key: str) -> bool:
        return key in self._base
