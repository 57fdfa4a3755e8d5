"""
Plugin resolution and loading for folio.

This module turns plugin requests into ResolvedPlugin objects. Each
request is normalized, classified, vetted and dispatched to the loader for
its provenance; results are memoized in a ResolutionCache.

Provenances:
    - LOCAL: A ``.py`` file under the base directory, sandbox-checked
      before it is imported
    - BUILTIN: A unit from the closed builtin registry
    - PACKAGE: An entry point in the ``folio.plugins`` group or an
      importable module, optionally version-pinned
    - REMOTE: Part of the contract, never executed

Plugin Module Exports:
    - ``plugin`` (or ``setup``): the transformation unit
    - ``PLUGIN_METADATA`` (or ``metadata``): mapping or PluginMetadata
    - ``css``: stylesheet text
    - ``PLUGIN_CONFIG``: optional mapping with ``priority`` and, for
      packages, a ``css`` resource file name

Modes:
    - strict: every failure raises a PluginError subclass
    - lenient: failures are logged, recorded in ``failures`` and the
      request resolves to None

Example:
    from folio.plugins.loader import PluginLoader

    loader = PluginLoader(base_dir="./book", strict=False)

    loaded = loader.load("ttrpg")
    local = loader.load({"path": "plugins/callouts.py", "priority": 150})
    missing = loader.load("not-installed")   # None, recorded in loader.failures
"""

from importlib import metadata as importlib_metadata
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Mapping
import hashlib
import importlib
import importlib.util
import logging
import sys
import threading
import traceback

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.version import InvalidVersion, Version

from folio.plugins.cache import ResolutionCache
from folio.plugins.errors import (
    MalformedRequest,
    PluginError,
    PluginLoadError,
    SecurityViolation,
    UnsupportedProvenance,
)
from folio.plugins.registry import BUILTIN_PLUGINS, list_builtin_plugins
from folio.plugins.requests import (
    RawRequest,
    classify,
    identity_of,
    local_path_of,
    normalize_request,
)
from folio.plugins.sandbox import PathSandbox
from folio.plugins.sdk import (
    MAX_PRIORITY,
    MIN_PRIORITY,
    PluginMetadata,
    PluginRequest,
    Provenance,
    ResolvedPlugin,
)

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "folio.plugins"


def satisfies_version(actual: str, expected: str) -> bool:
    """Check an installed version against a request's version constraint.

    PEP 440 specifiers (``>=1.0``, ``~=2.1``) are evaluated with
    ``packaging``. Bare versions and ``^``/``~`` prefixed versions match
    the installed version exactly or as a leading release prefix.

    Args:
        actual: Installed version.
        expected: Requested constraint.

    Returns:
        True if the installed version satisfies the constraint.
    """
    try:
        spec = SpecifierSet(expected)
    except InvalidSpecifier:
        clean = expected.lstrip("^~").strip()
        return actual == clean or actual.startswith(f"{clean}.")

    try:
        return spec.contains(Version(actual), prereleases=True)
    except InvalidVersion:
        return False


class PluginLoader:
    """Resolves plugin requests.

    The PluginLoader is responsible for:
    - Normalizing and classifying requests
    - Enforcing the sandbox on local requests
    - Dispatching to the provenance loaders
    - Caching resolutions by identity
    - Applying the strict/lenient failure policy

    Attributes:
        _base_dir: Base directory for local plugins.
        _strict: Whether failures raise.
        _verbose: Whether successful loads log at info level.
        _enable_cache: Whether resolutions are memoized.
        _security_fatal: Whether sandbox violations raise in lenient mode.
        _sandbox: The local path sandbox.
        _cache: The resolution cache.
        _failures: Errors recorded in lenient mode.

    Example:
        loader = PluginLoader(base_dir=".", strict=True)
        resolved = loader.load({"name": "ttrpg", "options": {"dice_notation": False}})
        resolved.apply(pipeline)
    """

    PLUGIN_EXPORTS = ("plugin", "setup")
    METADATA_EXPORTS = ("PLUGIN_METADATA", "metadata")
    STYLESHEET_EXPORT = "css"
    CONFIG_EXPORT = "PLUGIN_CONFIG"

    def __init__(
        self,
        base_dir: str | Path = ".",
        strict: bool = False,
        verbose: bool = False,
        cache: bool = True,
        security_fatal: bool = False,
        entry_point_group: str = ENTRY_POINT_GROUP,
    ):
        """Initialize the plugin loader.

        Args:
            base_dir: Directory local plugin paths are resolved against
                and confined to.
            strict: Raise on any failure instead of skipping the plugin.
            verbose: Log successful loads at info level.
            cache: Memoize resolutions by identity.
            security_fatal: Raise SecurityViolation even in lenient mode.
            entry_point_group: Entry-point group searched for packages.
        """
        self._sandbox = PathSandbox(base_dir)
        self._base_dir = self._sandbox.base_dir
        self._strict = strict
        self._verbose = verbose
        self._enable_cache = cache
        self._security_fatal = security_fatal
        self._entry_point_group = entry_point_group
        self._cache = ResolutionCache()
        self._failures: list[PluginError] = []
        self._failures_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Any = None) -> "PluginLoader":
        """Build a loader from a folio Settings object.

        Args:
            settings: Settings instance. Defaults to the process settings.
        """
        if settings is None:
            from folio.config import settings as default_settings
            settings = default_settings

        return cls(
            base_dir=settings.PLUGIN_BASE_DIR,
            strict=settings.PLUGIN_STRICT,
            verbose=settings.PLUGIN_VERBOSE,
            cache=settings.PLUGIN_CACHE,
            security_fatal=settings.PLUGIN_SECURITY_FATAL,
            entry_point_group=settings.PLUGIN_ENTRY_POINT_GROUP,
        )

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    @property
    def strict(self) -> bool:
        return self._strict

    @property
    def cache_enabled(self) -> bool:
        return self._enable_cache

    @property
    def sandbox(self) -> PathSandbox:
        return self._sandbox

    @property
    def cache(self) -> ResolutionCache:
        return self._cache

    @property
    def failures(self) -> list[PluginError]:
        """Errors recorded in lenient mode, oldest first."""
        with self._failures_lock:
            return list(self._failures)

    def clear_failures(self) -> None:
        with self._failures_lock:
            self._failures.clear()

    def clear_cache(self) -> None:
        """Clear the resolution cache."""
        self._cache.clear()

    def get_builtin_plugins(self) -> list[str]:
        """Get the identifiers of available builtin plugins."""
        return list_builtin_plugins()

    def load(self, raw: RawRequest) -> ResolvedPlugin | None:
        """Load a single plugin.

        Args:
            raw: A PluginRequest, bare string or mapping.

        Returns:
            The ResolvedPlugin, or None if the request is disabled or
            failed in lenient mode.

        Raises:
            PluginError: On failure in strict mode. SecurityViolation is
                also raised in lenient mode when ``security_fatal`` is set.
        """
        try:
            request = normalize_request(raw)
        except MalformedRequest as e:
            return self.handle_failure(e)

        if not request.enabled:
            logger.debug(f"Skipping disabled plugin: {request.label}")
            return None

        return self.resolve(request)

    def resolve(self, request: PluginRequest) -> ResolvedPlugin | None:
        """Resolve a normalized, enabled request under the failure policy."""
        provenance = classify(request, BUILTIN_PLUGINS)

        try:
            resolved = self._resolve(request, provenance)
        except PluginError as e:
            return self.handle_failure(e)
        except Exception as e:
            logger.debug(traceback.format_exc())
            error = PluginLoadError(
                request.label,
                str(e),
                provenance=provenance,
                identifier=identity_of(request, provenance).identifier,
                original=e,
            )
            error.__cause__ = e
            return self.handle_failure(error)

        self._log(
            f"Loaded {provenance.value} plugin: "
            f"{resolved.metadata.name} v{resolved.metadata.version}"
        )
        return resolved

    def _resolve(self, request: PluginRequest, provenance: Provenance) -> ResolvedPlugin:
        self._check_required_fields(request, provenance)

        if not self._enable_cache:
            return self._dispatch(request, provenance)

        identity = identity_of(request, provenance)
        resolved = self._cache.get_or_load(
            identity, lambda: self._dispatch(request, provenance)
        )
        return resolved.for_request(request)

    def _check_required_fields(self, request: PluginRequest, provenance: Provenance) -> None:
        """Raise MalformedRequest for fields the provenance requires."""
        missing = None
        if provenance is Provenance.LOCAL and not local_path_of(request):
            missing = "path"
        elif provenance in (Provenance.PACKAGE, Provenance.BUILTIN) and not request.name:
            missing = "name"
        elif provenance is Provenance.REMOTE:
            if not request.url:
                missing = "url"
            elif not request.integrity:
                missing = "integrity"

        if missing:
            raise MalformedRequest(
                request.label,
                missing,
                reason=f"{provenance.value} plugin requires '{missing}'",
                provenance=provenance,
            )

    def _dispatch(self, request: PluginRequest, provenance: Provenance) -> ResolvedPlugin:
        loaders: dict[Provenance, Callable[[PluginRequest], ResolvedPlugin]] = {
            Provenance.LOCAL: self._load_local,
            Provenance.BUILTIN: self._load_builtin,
            Provenance.PACKAGE: self._load_package,
            Provenance.REMOTE: self._load_remote,
        }
        return loaders[provenance](request)

    def handle_failure(self, error: PluginError) -> None:
        """Apply the strict/lenient policy to *error*."""
        with self._failures_lock:
            self._failures.append(error)

        if self._strict:
            raise error
        if isinstance(error, SecurityViolation):
            if self._security_fatal:
                raise error
            logger.error(f"{error}; plugin skipped")
        else:
            logger.warning(f"{error}; plugin skipped")
        return None

    # ------------------------------------------------------------------
    # Provenance loaders
    # ------------------------------------------------------------------

    def _load_local(self, request: PluginRequest) -> ResolvedPlugin:
        """Load a plugin from a file under the base directory."""
        raw_path = local_path_of(request) or ""
        plugin_path = self._sandbox.validate(raw_path, plugin_name=raw_path)

        if not plugin_path.is_file():
            raise PluginLoadError(
                raw_path,
                f"Plugin file not found: {raw_path} (resolved to {plugin_path})",
                provenance=Provenance.LOCAL,
            )

        module = self._import_file(plugin_path, raw_path)
        unit = self._find_unit(module, raw_path, Provenance.LOCAL)
        config = self._module_config(module)

        defaults = PluginMetadata(
            name=plugin_path.stem,
            version="0.0.0",
            description="Local plugin",
        )
        return self._build(
            request,
            name=raw_path,
            unit=unit,
            metadata=PluginMetadata.from_source(self._module_metadata(module), defaults),
            provenance=Provenance.LOCAL,
            stylesheet=self._module_stylesheet(module),
            source=str(plugin_path),
            default_priority=config.get("priority"),
        )

    def _load_builtin(self, request: PluginRequest) -> ResolvedPlugin:
        """Load a plugin from the builtin registry."""
        name = request.name or ""
        entry = BUILTIN_PLUGINS.get(name)
        if entry is None:
            available = ", ".join(list_builtin_plugins())
            raise PluginLoadError(
                name,
                f"Unknown built-in plugin: {name}. Available built-in plugins: {available}",
                provenance=Provenance.BUILTIN,
            )

        return self._build(
            request,
            name=name,
            unit=entry.unit,
            metadata=entry.metadata(),
            provenance=Provenance.BUILTIN,
            stylesheet=entry.read_stylesheet(),
            source=getattr(entry.unit, "__module__", None),
        )

    def _load_package(self, request: PluginRequest) -> ResolvedPlugin:
        """Load a plugin from an installed distribution."""
        name = request.name or ""
        module, unit, dist_name = self._import_package(name)
        if unit is None:
            unit = self._find_unit(module, name, Provenance.PACKAGE)

        installed = self._installed_version(dist_name, module)
        if request.version:
            if installed is None:
                raise PluginLoadError(
                    name,
                    f"Cannot determine installed version to check against {request.version}",
                    provenance=Provenance.PACKAGE,
                )
            if not satisfies_version(installed, request.version):
                raise PluginLoadError(
                    name,
                    f"Plugin {name} version {installed} does not satisfy {request.version}",
                    provenance=Provenance.PACKAGE,
                )

        config = self._module_config(module)
        stylesheet = self._module_stylesheet(module)
        if stylesheet is None and config.get("css"):
            stylesheet = self._read_package_resource(module, str(config["css"]), name)

        defaults = self._distribution_metadata(name, dist_name, installed)
        return self._build(
            request,
            name=name,
            unit=unit,
            metadata=PluginMetadata.from_source(self._module_metadata(module), defaults),
            provenance=Provenance.PACKAGE,
            stylesheet=stylesheet,
            source=module.__name__,
            default_priority=config.get("priority"),
        )

    def _load_remote(self, request: PluginRequest) -> ResolvedPlugin:
        """Remote plugins are never fetched or executed."""
        raise UnsupportedProvenance(
            request.url or "unknown",
            "Remote plugins are not supported; use local files or installed packages",
            provenance=Provenance.REMOTE,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _build(
        self,
        request: PluginRequest,
        default_priority: Any = None,
        **fields: Any,
    ) -> ResolvedPlugin:
        declared = int(default_priority) if default_priority is not None else None
        if declared is not None and not MIN_PRIORITY <= declared <= MAX_PRIORITY:
            raise ValueError(
                f"Declared priority {declared} is outside "
                f"{MIN_PRIORITY}..{MAX_PRIORITY}"
            )
        resolved = ResolvedPlugin(
            priority=request.priority,
            options=dict(request.options),
            default_priority=declared,
            **fields,
        )
        return resolved.for_request(request)

    def _import_file(self, path: Path, plugin_name: str) -> ModuleType:
        digest = hashlib.sha1(str(path).encode("utf-8")).hexdigest()[:12]
        module_name = f"_folio_local_{path.stem}_{digest}"

        spec = importlib.util.spec_from_file_location(module_name, path)
        if spec is None or spec.loader is None:
            raise PluginLoadError(
                plugin_name,
                f"Cannot import {path}",
                provenance=Provenance.LOCAL,
            )

        module = importlib.util.module_from_spec(spec)
        sys.modules[module_name] = module
        try:
            spec.loader.exec_module(module)
        except Exception as e:
            sys.modules.pop(module_name, None)
            raise PluginLoadError(
                plugin_name,
                f"Error executing plugin module: {e}",
                provenance=Provenance.LOCAL,
                original=e,
            ) from e
        return module

    def _import_package(self, name: str) -> tuple[ModuleType, Any, str | None]:
        """Import a package plugin.

        Returns:
            Tuple of (module, unit or None, distribution name or None).
        """
        for entry_point in importlib_metadata.entry_points(group=self._entry_point_group):
            if entry_point.name != name:
                continue
            logger.debug(f"Resolving {name} via entry point {entry_point.value}")
            target = entry_point.load()
            dist = getattr(entry_point, "dist", None)
            dist_name = dist.name if dist is not None else None
            if isinstance(target, ModuleType):
                return target, None, dist_name
            module = sys.modules[target.__module__]
            return module, target, dist_name

        module_name = name.replace("-", "_")
        try:
            found = importlib.util.find_spec(module_name)
        except (ImportError, ValueError):
            found = None
        if found is None:
            raise PluginLoadError(
                name,
                f"Plugin package not found: {name}. Install it with: pip install {name}",
                provenance=Provenance.PACKAGE,
            )

        return importlib.import_module(module_name), None, name

    def _installed_version(self, dist_name: str | None, module: ModuleType) -> str | None:
        if dist_name:
            try:
                return importlib_metadata.version(dist_name)
            except importlib_metadata.PackageNotFoundError:
                pass
        version = getattr(module, "__version__", None)
        return str(version) if version else None

    def _distribution_metadata(
        self,
        name: str,
        dist_name: str | None,
        installed: str | None,
    ) -> PluginMetadata:
        description = author = homepage = None
        keywords: list[str] = []
        if dist_name:
            try:
                meta = importlib_metadata.metadata(dist_name)
            except importlib_metadata.PackageNotFoundError:
                meta = None
            if meta is not None:
                description = meta.get("Summary")
                author = meta.get("Author") or meta.get("Author-email")
                homepage = meta.get("Home-page")
                keywords = [k.strip() for k in (meta.get("Keywords") or "").split(",") if k.strip()]

        return PluginMetadata(
            name=name,
            version=installed or "0.0.0",
            description=description or "",
            author=author,
            homepage=homepage,
            keywords=keywords,
        )

    def _read_package_resource(self, module: ModuleType, resource: str, name: str) -> str | None:
        module_file = getattr(module, "__file__", None)
        if not module_file:
            return None
        package_dir = Path(module_file).parent
        css_path = PathSandbox(package_dir).validate(
            resource, plugin_name=name, provenance=Provenance.PACKAGE
        )
        if not css_path.is_file():
            logger.warning(f"Stylesheet {resource} declared by {name} not found")
            return None
        return css_path.read_text(encoding="utf-8")

    def _find_unit(self, module: ModuleType, plugin_name: str, provenance: Provenance) -> Any:
        for attr in self.PLUGIN_EXPORTS:
            unit = getattr(module, attr, None)
            if unit is not None:
                if not callable(unit):
                    raise PluginLoadError(
                        plugin_name,
                        f"Plugin export '{attr}' is not callable",
                        provenance=provenance,
                    )
                return unit

        raise PluginLoadError(
            plugin_name,
            "Plugin must define a callable 'plugin' (or 'setup'): "
            "def plugin(pipeline, options): ...",
            provenance=provenance,
        )

    def _module_metadata(self, module: ModuleType) -> PluginMetadata | Mapping[str, Any] | None:
        for attr in self.METADATA_EXPORTS:
            value = getattr(module, attr, None)
            if isinstance(value, (PluginMetadata, Mapping)):
                return value
        return None

    def _module_stylesheet(self, module: ModuleType) -> str | None:
        css = getattr(module, self.STYLESHEET_EXPORT, None)
        return css if isinstance(css, str) and css else None

    def _module_config(self, module: ModuleType) -> Mapping[str, Any]:
        config = getattr(module, self.CONFIG_EXPORT, None)
        return config if isinstance(config, Mapping) else {}

    def _log(self, message: str) -> None:
        if self._verbose:
            logger.info(message)
        else:
            logger.debug(message)

    def __repr__(self) -> str:
        return (
            f"<PluginLoader base={self._base_dir} strict={self._strict} "
            f"cached={len(self._cache)} failures={len(self._failures)}>"
        )


def create_plugin_loader(base_dir: str | Path, **options: Any) -> PluginLoader:
    """Create a plugin loader.

    Args:
        base_dir: Base directory for resolving plugin paths.
        **options: Additional PluginLoader keyword arguments.

    Returns:
        PluginLoader instance.
    """
    return PluginLoader(base_dir=base_dir, **options)
