"""
Plugin composition for folio.

The composer turns a batch of plugin requests into the ordered set of
units a document build applies, plus the aggregate stylesheet.

Composition Steps:
    1. Normalize every request
    2. Drop disabled requests silently
    3. Resolve the rest concurrently (failures isolated per request)
    4. Stable-sort by priority, highest first; input order breaks ties
    5. Concatenate stylesheets in the final order

Only resolution runs concurrently. Sorting, stylesheet concatenation and
applying units to a pipeline are sequential, because rule insertion is
order dependent and the pipeline is not safe for concurrent mutation.

Example:
    from folio.plugins import PluginComposer, PluginLoader, Pipeline

    composer = PluginComposer(PluginLoader(base_dir="./book"))
    composition = composer.compose([
        "ttrpg",
        {"path": "plugins/callouts.py", "priority": 200},
        {"name": "dimm_city", "enabled": False},
    ])

    pipeline = Pipeline()
    composer.apply(composition.plugins, pipeline)
    css = composition.stylesheet
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Iterable, Sequence

from folio.plugins.errors import MalformedRequest, PluginError
from folio.plugins.loader import PluginLoader
from folio.plugins.requests import RawRequest, normalize_request
from folio.plugins.sdk import PluginRequest, ResolvedPlugin

logger = logging.getLogger(__name__)


@dataclass
class Composition:
    """Result of composing a batch of requests.

    Attributes:
        plugins: Resolved plugins in application order.
        stylesheet: Concatenated stylesheets in the same order.
        failures: Errors recorded for this batch (lenient mode).
    """

    plugins: list[ResolvedPlugin]
    stylesheet: str
    failures: list[PluginError] = field(default_factory=list)

    @property
    def names(self) -> list[str]:
        return [plugin.name for plugin in self.plugins]

    def to_dict(self) -> dict[str, Any]:
        return {
            "plugins": [plugin.to_dict() for plugin in self.plugins],
            "stylesheet_length": len(self.stylesheet),
            "failures": [error.to_dict() for error in self.failures],
        }


def sort_by_priority(plugins: Iterable[ResolvedPlugin]) -> list[ResolvedPlugin]:
    """Sort highest priority first; ``sorted`` is stable so ties keep input order."""
    return sorted(plugins, key=lambda plugin: plugin.priority, reverse=True)


def collect_stylesheet(plugins: Iterable[ResolvedPlugin]) -> str:
    """Concatenate plugin stylesheets in the given order."""
    return "".join(plugin.stylesheet for plugin in plugins if plugin.stylesheet)


class PluginComposer:
    """Loads, filters and orders plugin batches.

    Attributes:
        _loader: The loader resolving individual requests.
        _max_workers: Threads used for resolution; 1 resolves sequentially.

    Example:
        composer = PluginComposer(loader, max_workers=4)
        plugins = composer.load_plugins(["ttrpg", "dimm_city"])
    """

    def __init__(self, loader: PluginLoader, max_workers: int = 4):
        """Initialize the composer.

        Args:
            loader: The loader to resolve requests with.
            max_workers: Maximum resolution threads.
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self._loader = loader
        self._max_workers = max_workers

    @property
    def loader(self) -> PluginLoader:
        return self._loader

    def load_plugins(self, requests: Sequence[RawRequest]) -> list[ResolvedPlugin]:
        """Load a batch of requests.

        Args:
            requests: Plugin declarations in configuration order.

        Returns:
            Resolved plugins, highest priority first.

        Raises:
            PluginError: In strict mode, the first failure in input order.
        """
        entries: list[PluginRequest | MalformedRequest] = []
        for raw in requests:
            try:
                request = normalize_request(raw)
            except MalformedRequest as e:
                # Reported at its position so strict mode keeps input order
                entries.append(e)
                continue
            if not request.enabled:
                logger.debug(f"Skipping disabled plugin: {request.label}")
                continue
            entries.append(request)

        resolved = self._resolve_all(entries)
        ordered = sort_by_priority(plugin for plugin in resolved if plugin is not None)

        logger.info(
            f"Composed {len(ordered)} of {len(requests)} plugin(s): "
            f"{', '.join(plugin.name for plugin in ordered) or 'none'}"
        )
        return ordered

    def _resolve_all(
        self, entries: list[PluginRequest | MalformedRequest]
    ) -> list[ResolvedPlugin | None]:
        if self._max_workers == 1 or len(entries) <= 1:
            return [self._resolve_entry(entry) for entry in entries]

        workers = min(self._max_workers, len(entries))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="folio-plugin") as pool:
            pending = [
                entry if isinstance(entry, MalformedRequest)
                else pool.submit(self._loader.resolve, entry)
                for entry in entries
            ]
            # Collected in input order, so strict mode reports the earliest
            # failing request
            return [
                self._loader.handle_failure(item) if isinstance(item, MalformedRequest)
                else item.result()
                for item in pending
            ]

    def _resolve_entry(self, entry: PluginRequest | MalformedRequest) -> ResolvedPlugin | None:
        if isinstance(entry, MalformedRequest):
            return self._loader.handle_failure(entry)
        return self._loader.resolve(entry)

    def compose(self, requests: Sequence[RawRequest]) -> Composition:
        """Load a batch and collect its stylesheet.

        Failures recorded by the loader while composing this batch are
        returned with the composition.
        """
        before = len(self._loader.failures)
        plugins = self.load_plugins(requests)
        failures = self._loader.failures[before:]
        return Composition(
            plugins=plugins,
            stylesheet=collect_stylesheet(plugins),
            failures=failures,
        )

    def apply(self, plugins: Iterable[ResolvedPlugin], pipeline: Any) -> list[ResolvedPlugin]:
        """Invoke each unit against *pipeline*, in order, on this thread.

        Returns:
            The plugins that applied successfully.

        Raises:
            PluginError: In strict mode, when a unit raises.
        """
        applied = []
        for plugin in plugins:
            try:
                plugin.apply(pipeline)
            except Exception as e:
                error = PluginError(
                    plugin.name,
                    f"Error applying plugin: {e}",
                    provenance=plugin.provenance,
                    original=e,
                )
                if self._loader.strict:
                    raise error from e
                logger.warning(f"{error}; plugin skipped")
                continue
            applied.append(plugin)
            logger.debug(f"Applied plugin {plugin.name} (priority {plugin.priority})")
        return applied


def load_plugins(
    requests: Sequence[RawRequest],
    base_dir: str = ".",
    max_workers: int = 4,
    **options: Any,
) -> list[ResolvedPlugin]:
    """Load a batch of requests with a fresh loader.

    Args:
        requests: Plugin declarations.
        base_dir: Base directory for local plugins.
        max_workers: Resolution threads.
        **options: Additional PluginLoader keyword arguments.
    """
    loader = PluginLoader(base_dir=base_dir, **options)
    return PluginComposer(loader, max_workers=max_workers).load_plugins(requests)
