"""
Plugin engine for folio.

This package resolves declarative plugin requests into transformation
units and composes them into the shared grammar/render pipeline used by
the document compiler.

Plugin Architecture:
    Requests flow through dedicated components:
    - normalize_request / classify: canonical request and provenance
    - PathSandbox: trust boundary for local plugin files
    - PluginLoader: provenance loaders (local, builtin, package, remote)
    - ResolutionCache: memoized resolutions keyed by identity
    - PluginComposer: batch loading, priority ordering, stylesheets
    - Pipeline: ordered grammar rules and render functions

Security:
    Local plugins must live under the configured base directory. Absolute
    paths, traversal and symlink escapes raise SecurityViolation before any
    plugin code is imported. Remote plugins are never fetched.

Example:
    from folio.plugins import Pipeline, PluginComposer, PluginLoader

    loader = PluginLoader(base_dir="./book")
    composer = PluginComposer(loader)

    composition = composer.compose(["ttrpg", {"path": "plugins/callouts.py"}])
    pipeline = Pipeline()
    composer.apply(composition.plugins, pipeline)

    html = pipeline.render_inline("Roll 2d6 vs CR:4")
"""

from folio.plugins.sdk import (
    DEFAULT_PRIORITY,
    PluginMetadata,
    PluginRequest,
    Provenance,
    ResolvedPlugin,
    TransformationUnit,
)
from folio.plugins.errors import (
    MalformedRequest,
    PluginError,
    PluginLoadError,
    SecurityViolation,
    UnsupportedProvenance,
)
from folio.plugins.requests import (
    PluginIdentity,
    classify,
    identity_of,
    normalize_request,
)
from folio.plugins.sandbox import (
    PathSandbox,
    SandboxViolation,
)
from folio.plugins.pipeline import (
    Pipeline,
    Renderer,
    Ruler,
    RuleNotFoundError,
    Token,
)
from folio.plugins.registry import (
    BUILTIN_PLUGINS,
    list_builtin_plugins,
)
from folio.plugins.cache import (
    ResolutionCache,
)
from folio.plugins.loader import (
    PluginLoader,
    create_plugin_loader,
)
from folio.plugins.composer import (
    Composition,
    PluginComposer,
    collect_stylesheet,
    load_plugins,
)

__all__ = [
    # SDK
    "DEFAULT_PRIORITY",
    "PluginMetadata",
    "PluginRequest",
    "Provenance",
    "ResolvedPlugin",
    "TransformationUnit",
    # Errors
    "MalformedRequest",
    "PluginError",
    "PluginLoadError",
    "SecurityViolation",
    "UnsupportedProvenance",
    # Requests
    "PluginIdentity",
    "classify",
    "identity_of",
    "normalize_request",
    # Sandbox
    "PathSandbox",
    "SandboxViolation",
    # Pipeline
    "Pipeline",
    "Renderer",
    "Ruler",
    "RuleNotFoundError",
    "Token",
    # Registry
    "BUILTIN_PLUGINS",
    "list_builtin_plugins",
    # Cache
    "ResolutionCache",
    # Loader
    "PluginLoader",
    "create_plugin_loader",
    # Composer
    "Composition",
    "PluginComposer",
    "collect_stylesheet",
    "load_plugins",
]
