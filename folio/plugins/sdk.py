"""
Plugin SDK for folio.

This module defines the data model shared by every part of the plugin
engine and the contract a transformation unit has to satisfy.

Core Types:
    1. PluginRequest: A user-authored declaration from configuration
    2. PluginMetadata: Identity and descriptive data of a plugin
    3. ResolvedPlugin: A request resolved to an executable unit
    4. TransformationUnit: The callable contract for plugin code

A transformation unit is a plain callable taking the shared pipeline and
the request's options. It registers grammar rules and render overrides
and returns nothing.

Example - Writing a local plugin (``plugins/shout.py``):
    import re

    PLUGIN_METADATA = {
        "name": "shout",
        "version": "1.0.0",
        "description": "Renders !!text!! as <strong>",
    }

    css = ".shout { text-transform: uppercase; }"

    def parse_shout(state, silent):
        match = re.match(r"!!([^!]+)!!", state.src[state.pos:])
        if not match:
            return False
        if not silent:
            token = state.push("shout", "strong")
            token.content = match.group(1)
        state.pos += match.end()
        return True

    def plugin(pipeline, options):
        pipeline.inline.before("emphasis", "shout", parse_shout)
        pipeline.renderer.set_rule(
            "shout",
            lambda tokens, idx: f'<strong class="shout">{tokens[idx].content}</strong>',
        )
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping, Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_PRIORITY = 100
MIN_PRIORITY = 0
MAX_PRIORITY = 1000


class Provenance(str, Enum):
    """Origin category of a plugin request.

    Attributes:
        LOCAL: A Python file under the configured base directory.
        BUILTIN: A unit bundled with the engine.
        PACKAGE: An installed Python distribution or entry point.
        REMOTE: Code fetched from a URL (never executed).
    """

    LOCAL = "local"
    BUILTIN = "builtin"
    PACKAGE = "package"
    REMOTE = "remote"


class PluginRequest(BaseModel):
    """A declarative request for one plugin.

    Requests are created from configuration input and are immutable once
    normalized. Unknown keys are ignored so configuration documents can
    carry extra annotations.

    Attributes:
        type: Explicit provenance; inferred when omitted.
        path: Path to a local plugin file, relative to the base directory.
        name: Builtin identifier or package name.
        version: Version constraint for package plugins.
        url: URL of a remote plugin.
        integrity: Subresource integrity hash, required with ``url``.
        enabled: Disabled requests are skipped silently.
        options: Opaque options handed to the transformation unit.
        priority: Higher priorities are applied first.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    type: Provenance | None = None
    path: str | None = None
    name: str | None = None
    version: str | None = None
    url: str | None = None
    integrity: str | None = None
    enabled: bool = True
    options: dict[str, Any] = Field(default_factory=dict)
    priority: int = Field(default=DEFAULT_PRIORITY, ge=MIN_PRIORITY, le=MAX_PRIORITY)

    @property
    def priority_is_explicit(self) -> bool:
        """Whether the priority came from configuration rather than the default."""
        return "priority" in self.model_fields_set

    @property
    def label(self) -> str:
        """Best human-readable reference to the requested plugin."""
        return self.name or self.path or self.url or "unknown"


@dataclass
class PluginMetadata:
    """Metadata describing a plugin.

    Attributes:
        name: Plugin name.
        version: Version string.
        description: Human-readable description.
        author: Plugin author name or organization.
        homepage: URL to plugin homepage or documentation.
        keywords: Categorization keywords.
    """

    name: str
    version: str = "0.0.0"
    description: str | None = None
    author: str | None = None
    homepage: str | None = None
    keywords: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("Plugin name cannot be empty")
        if not self.version:
            raise ValueError("Plugin version cannot be empty")

    @classmethod
    def from_source(
        cls,
        source: PluginMetadata | Mapping[str, Any] | None,
        defaults: PluginMetadata,
    ) -> PluginMetadata:
        """Merge module-provided metadata over a set of defaults.

        Args:
            source: Metadata exported by the plugin module, if any.
            defaults: Values used for every field the module leaves unset.

        Returns:
            A new PluginMetadata instance.
        """
        if source is None:
            return replace(defaults, keywords=list(defaults.keywords))
        if isinstance(source, PluginMetadata):
            return replace(source, keywords=list(source.keywords))

        values = defaults.to_dict()
        for key in values:
            value = source.get(key)
            if not value:
                continue
            if key == "keywords":
                values[key] = [value] if isinstance(value, str) else [str(item) for item in value]
            else:
                values[key] = str(value)
        return cls(**values)

    def to_dict(self) -> dict[str, Any]:
        """Convert metadata to dictionary."""
        return {
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "author": self.author,
            "homepage": self.homepage,
            "keywords": list(self.keywords),
        }

    def __repr__(self) -> str:
        return f"<PluginMetadata {self.name}@{self.version}>"


@runtime_checkable
class TransformationUnit(Protocol):
    """Callable contract for plugin code.

    A unit is invoked once per build with the shared pipeline and the
    options from its request. It must not assume anything about the
    order of other units beyond the priority ordering.
    """

    def __call__(self, pipeline: Any, options: dict[str, Any]) -> None:
        ...


@dataclass(frozen=True)
class ResolvedPlugin:
    """A plugin request resolved to an executable unit.

    Attributes:
        name: Canonical plugin name (path for local plugins).
        unit: The transformation unit.
        metadata: Plugin metadata.
        provenance: Where the unit came from.
        priority: Effective priority.
        options: Options passed to the unit.
        stylesheet: CSS contributed by the plugin.
        source: File path or module name the unit was loaded from.
        default_priority: Priority declared by the plugin itself, used
            when a request does not set one.
    """

    name: str
    unit: TransformationUnit
    metadata: PluginMetadata
    provenance: Provenance
    priority: int = DEFAULT_PRIORITY
    options: dict[str, Any] = field(default_factory=dict)
    stylesheet: str | None = None
    source: str | None = None
    default_priority: int | None = None

    def for_request(self, request: PluginRequest) -> ResolvedPlugin:
        """Return this resolution as seen by *request*.

        The same instance is returned when priority and options already
        match; otherwise a view sharing the unit, metadata and stylesheet.
        """
        priority = request.priority
        if not request.priority_is_explicit and self.default_priority is not None:
            priority = self.default_priority

        if priority == self.priority and request.options == self.options:
            return self
        return replace(self, priority=priority, options=dict(request.options))

    def apply(self, pipeline: Any) -> None:
        """Invoke the unit against *pipeline* with this plugin's options."""
        self.unit(pipeline, dict(self.options))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "provenance": self.provenance.value,
            "priority": self.priority,
            "metadata": self.metadata.to_dict(),
            "options": dict(self.options),
            "has_stylesheet": bool(self.stylesheet),
            "source": self.source,
        }
