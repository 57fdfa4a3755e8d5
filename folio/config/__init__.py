"""folio configuration -- environment settings and plugin list documents."""

from .settings import Settings, settings
from .manifest import ManifestError, load_plugin_list, parse_plugin_list

__all__ = [
    "ManifestError",
    "Settings",
    "load_plugin_list",
    "parse_plugin_list",
    "settings",
]
