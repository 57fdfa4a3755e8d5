"""Read plugin request lists from JSON documents.

Two document shapes are accepted:

* a bare list of plugin declarations
* an object with a ``plugins`` list (other keys are ignored)

Each declaration is a string or an object; full validation happens when the
loader normalizes the request.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class ManifestError(ValueError):
    """Raised when a document does not contain a usable plugin list."""


def parse_plugin_list(data: Any) -> list[str | dict[str, Any]]:
    """Extract the plugin declarations from decoded JSON.

    Raises:
        ManifestError: If the structure is not a plugin list.
    """
    if isinstance(data, dict):
        data = data.get("plugins", [])
    if not isinstance(data, list):
        raise ManifestError("Expected a list of plugins or an object with a 'plugins' list")

    for idx, item in enumerate(data):
        if not isinstance(item, (str, dict)):
            raise ManifestError(
                f"Plugin entry {idx} must be a string or an object, got {type(item).__name__}"
            )
        if isinstance(item, str) and not item.strip():
            raise ManifestError(f"Plugin entry {idx} cannot be empty")
    return data


def load_plugin_list(path: str | Path) -> list[str | dict[str, Any]]:
    """Load plugin declarations from a JSON file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ManifestError: If the content is not valid JSON or not a plugin list.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Plugin configuration not found at {path}")
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise ManifestError(f"Invalid JSON in {path}: {e}") from e

    plugins = parse_plugin_list(raw)
    logger.debug(f"Read {len(plugins)} plugin declaration(s) from {path}")
    return plugins
