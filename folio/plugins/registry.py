"""
Builtin plugin registry for folio.

The registry is a closed, statically enumerable set of units bundled with
the engine. Builtins are trusted by construction: they need no sandbox
check and their identifiers win over package names during classification.

Example:
    from folio.plugins.registry import get_builtin, list_builtin_plugins

    list_builtin_plugins()          # ["dimm_city", "ttrpg"]
    entry = get_builtin("ttrpg")
    entry.unit(pipeline, {"dice_notation": False})
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from importlib import resources
from types import MappingProxyType
from typing import Mapping

from folio.plugins.builtin import dimm_city_plugin, ttrpg_plugin
from folio.plugins.sdk import PluginMetadata, TransformationUnit

logger = logging.getLogger(__name__)

BUILTIN_VERSION = "1.0.0"
_ASSETS_PACKAGE = "folio.plugins.builtin"


@dataclass(frozen=True)
class BuiltinPlugin:
    """A registry entry for a bundled unit.

    Attributes:
        name: Builtin identifier used in configuration.
        unit: The transformation unit.
        description: Human-readable description.
        stylesheet: File name of the packaged stylesheet, if any.
        keywords: Categorization keywords.
    """

    name: str
    unit: TransformationUnit
    description: str
    stylesheet: str | None = None
    keywords: tuple[str, ...] = ()

    def metadata(self) -> PluginMetadata:
        return PluginMetadata(
            name=self.name,
            version=BUILTIN_VERSION,
            description=self.description,
            author="folio",
            keywords=list(self.keywords),
        )

    def read_stylesheet(self) -> str | None:
        """Read the packaged stylesheet, or None when there is none."""
        if not self.stylesheet:
            return None
        resource = resources.files(_ASSETS_PACKAGE).joinpath("assets").joinpath(self.stylesheet)
        if not resource.is_file():
            logger.debug(f"No stylesheet resource for builtin plugin {self.name}")
            return None
        return resource.read_text(encoding="utf-8")


BUILTIN_PLUGINS: Mapping[str, BuiltinPlugin] = MappingProxyType({
    "ttrpg": BuiltinPlugin(
        name="ttrpg",
        unit=ttrpg_plugin,
        description="Stat blocks, dice notation, cross-references, trait callouts and challenge ratings",
        stylesheet="ttrpg-components.css",
        keywords=("ttrpg", "dice", "stat-block"),
    ),
    "dimm_city": BuiltinPlugin(
        name="dimm_city",
        unit=dimm_city_plugin,
        description="Dimm City district badges and roll prompts",
        stylesheet="dimm_city-components.css",
        keywords=("ttrpg", "dimm-city"),
    ),
})


def list_builtin_plugins() -> list[str]:
    """List builtin identifiers without loading anything."""
    return sorted(BUILTIN_PLUGINS)


def get_builtin(name: str) -> BuiltinPlugin | None:
    """Look up a builtin entry by identifier."""
    return BUILTIN_PLUGINS.get(name)
