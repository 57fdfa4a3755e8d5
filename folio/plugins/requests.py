"""
Request normalization and provenance classification.

Configuration may declare a plugin either as a bare string or as a
structured object. Both shapes are normalized into a PluginRequest, then
classified into a Provenance when the request does not name one.

Classification order (first match wins):
    1. explicit ``type``
    2. ``path`` present, or ``name`` looks like a file reference -> local
    3. ``name`` is a builtin identifier -> builtin
    4. ``url`` present -> remote
    5. anything else -> package
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from typing import Any, Collection, Mapping, Union

from pydantic import ValidationError

from folio.plugins.errors import MalformedRequest
from folio.plugins.sdk import PluginRequest, Provenance

LOCAL_PREFIXES = ("./", "../")
SOURCE_EXTENSIONS = (".py",)

RawRequest = Union[PluginRequest, str, Mapping[str, Any]]


@dataclass(frozen=True)
class PluginIdentity:
    """Cache key for a resolved plugin.

    Derived from provenance plus the provenance-specific identifier.
    Priority and options never take part, so requests for the same code
    with different priorities share one resolution.
    """

    provenance: Provenance
    identifier: str

    def __str__(self) -> str:
        return f"{self.provenance.value}:{self.identifier}"


def normalize_request(raw: RawRequest) -> PluginRequest:
    """Normalize a raw plugin declaration.

    Args:
        raw: A PluginRequest, a bare string or a mapping from configuration.

    Returns:
        A PluginRequest with defaults applied.

    Raises:
        MalformedRequest: If *raw* is not a string or mapping, or a
            mapping does not validate.
    """
    if isinstance(raw, PluginRequest):
        return raw
    if isinstance(raw, str):
        return PluginRequest(name=raw)
    if not isinstance(raw, Mapping):
        raise MalformedRequest(
            repr(raw),
            "request",
            reason=f"expected a string or mapping, got {type(raw).__name__}",
        )

    try:
        return PluginRequest.model_validate(dict(raw))
    except ValidationError as e:
        first = e.errors()[0]
        field = ".".join(str(part) for part in first["loc"]) or "request"
        label = raw.get("name") or raw.get("path") or raw.get("url") or "unknown"
        raise MalformedRequest(
            str(label),
            field,
            reason=f"invalid field '{field}': {first['msg']}",
            original=e,
        ) from e


def looks_like_path(value: str | None) -> bool:
    """Whether *value* reads as a filesystem reference."""
    if not value:
        return False
    return value.startswith(LOCAL_PREFIXES) or value.endswith(SOURCE_EXTENSIONS)


def classify(request: PluginRequest, builtin_names: Collection[str]) -> Provenance:
    """Infer the provenance of *request*.

    Args:
        request: A normalized request.
        builtin_names: Identifiers of the builtin registry.

    Returns:
        The request's Provenance.
    """
    if request.type is not None:
        return request.type
    if request.path or looks_like_path(request.name):
        return Provenance.LOCAL
    if request.name and request.name in builtin_names:
        return Provenance.BUILTIN
    if request.url:
        return Provenance.REMOTE
    return Provenance.PACKAGE


def local_path_of(request: PluginRequest) -> str | None:
    """The path a local request refers to (``path``, else a path-like ``name``)."""
    if request.path:
        return request.path
    if request.type is Provenance.LOCAL or looks_like_path(request.name):
        return request.name
    return None


def identity_of(request: PluginRequest, provenance: Provenance) -> PluginIdentity:
    """Compute the cache identity of *request*. Pure and total."""
    if provenance is Provenance.LOCAL:
        path = local_path_of(request) or ""
        identifier = posixpath.normpath(path.replace("\\", "/")) if path else ""
    elif provenance is Provenance.PACKAGE:
        identifier = request.name or ""
        if request.version:
            identifier = f"{identifier}@{request.version}"
    elif provenance is Provenance.REMOTE:
        identifier = request.url or ""
    else:
        identifier = request.name or ""
    return PluginIdentity(provenance=provenance, identifier=identifier)
