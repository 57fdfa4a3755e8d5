"""
Plugin error taxonomy for folio.

Hierarchy:
    PluginError
    ├── MalformedRequest         - a required field is missing or invalid
    └── PluginLoadError          - the plugin could not be resolved
        ├── SecurityViolation    - a local path escaped the base directory
        └── UnsupportedProvenance - the provenance is not implemented

Every error carries the plugin name, provenance and identifier of the
request it belongs to. Wrapped exceptions are kept in ``original`` and
chained as ``__cause__`` by the loader.
"""

from __future__ import annotations

from typing import Any


class PluginError(Exception):
    """Base class for plugin engine errors.

    Attributes:
        plugin_name: Name of the plugin the error belongs to.
        provenance: Provenance of the request, if known.
        identifier: Path, name or URL of the request.
        reason: Reason for the failure.
        original: Original exception if any.
    """

    def __init__(
        self,
        plugin_name: str,
        reason: str,
        provenance: Any = None,
        identifier: str | None = None,
        original: BaseException | None = None,
    ):
        self.plugin_name = plugin_name
        self.reason = reason
        self.provenance = provenance
        self.identifier = identifier if identifier is not None else plugin_name
        self.original = original
        super().__init__(self._format())

    def _format(self) -> str:
        return f"Plugin '{self.plugin_name}': {self.reason}"

    @property
    def provenance_name(self) -> str | None:
        return getattr(self.provenance, "value", self.provenance)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "error": type(self).__name__,
            "plugin_name": self.plugin_name,
            "provenance": self.provenance_name,
            "identifier": self.identifier,
            "reason": self.reason,
        }


class MalformedRequest(PluginError):
    """Raised when a request lacks a field its provenance requires.

    Attributes:
        field: Name of the offending field.
    """

    def __init__(
        self,
        plugin_name: str,
        field: str,
        reason: str | None = None,
        provenance: Any = None,
        original: BaseException | None = None,
    ):
        self.field = field
        super().__init__(
            plugin_name,
            reason or f"missing required field '{field}'",
            provenance=provenance,
            original=original,
        )


class PluginLoadError(PluginError):
    """Raised when a plugin fails to load."""

    def _format(self) -> str:
        return f"Failed to load plugin '{self.plugin_name}': {self.reason}"


class SecurityViolation(PluginLoadError):
    """Raised when a local plugin path escapes the trust boundary.

    Attributes:
        path: The rejected path as requested.
        boundary: The base directory the path had to stay within.
    """

    def __init__(
        self,
        plugin_name: str,
        reason: str,
        path: str,
        boundary: str,
        provenance: Any = None,
    ):
        self.path = path
        self.boundary = boundary
        super().__init__(
            plugin_name,
            reason,
            provenance=provenance,
            identifier=path,
        )

    def _format(self) -> str:
        return (
            f"Security violation for plugin '{self.plugin_name}': {self.reason} "
            f"(path={self.path!r}, boundary={self.boundary!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["path"] = self.path
        data["boundary"] = self.boundary
        return data


class UnsupportedProvenance(PluginLoadError):
    """Raised for provenances that exist in the contract but are not implemented."""
