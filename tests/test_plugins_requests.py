"""Tests for folio.plugins request normalization and classification.

Tests cover:
- normalize_request for strings, mappings and PluginRequest instances
- Field validation (priority bounds, malformed values)
- Provenance classification order
- Identity derivation per provenance
"""

from __future__ import annotations

import pytest

from folio.plugins import (
    MalformedRequest,
    PluginIdentity,
    PluginRequest,
    Provenance,
    classify,
    identity_of,
    normalize_request,
)
from folio.plugins.registry import BUILTIN_PLUGINS
from folio.plugins.requests import local_path_of, looks_like_path


# ===========================================================================
# Normalization
# ===========================================================================


class TestNormalizeRequest:
    """Tests for normalize_request()."""

    def test_string_becomes_name(self):
        """A bare string is shorthand for {name: string}."""
        request = normalize_request("ttrpg")
        assert request.name == "ttrpg"
        assert request.enabled is True
        assert request.priority == 100
        assert request.options == {}

    def test_mapping_defaults_applied(self):
        request = normalize_request({"path": "plugins/local.py"})
        assert request.path == "plugins/local.py"
        assert request.enabled is True
        assert request.priority == 100
        assert request.options == {}

    def test_mapping_values_kept(self):
        request = normalize_request({
            "name": "ttrpg",
            "enabled": False,
            "priority": 250,
            "options": {"dice_notation": False},
        })
        assert request.enabled is False
        assert request.priority == 250
        assert request.options == {"dice_notation": False}

    def test_request_instance_returned_unchanged(self):
        original = PluginRequest(name="ttrpg")
        assert normalize_request(original) is original

    def test_unknown_keys_ignored(self):
        request = normalize_request({"name": "ttrpg", "comment": "house rules"})
        assert request.name == "ttrpg"

    def test_explicit_type_parsed(self):
        request = normalize_request({"type": "package", "name": "folio-extras"})
        assert request.type is Provenance.PACKAGE

    def test_request_is_frozen(self):
        """Normalized requests cannot be mutated."""
        request = normalize_request("ttrpg")
        with pytest.raises(Exception):
            request.name = "other"

    def test_priority_above_range_rejected(self):
        with pytest.raises(MalformedRequest) as exc_info:
            normalize_request({"name": "ttrpg", "priority": 5000})
        assert exc_info.value.field == "priority"
        assert exc_info.value.plugin_name == "ttrpg"

    def test_negative_priority_rejected(self):
        with pytest.raises(MalformedRequest) as exc_info:
            normalize_request({"name": "ttrpg", "priority": -1})
        assert exc_info.value.field == "priority"

    def test_invalid_type_rejected(self):
        with pytest.raises(MalformedRequest) as exc_info:
            normalize_request({"type": "ftp", "name": "x"})
        assert exc_info.value.field == "type"

    def test_options_must_be_mapping(self):
        with pytest.raises(MalformedRequest) as exc_info:
            normalize_request({"name": "ttrpg", "options": ["a", "b"]})
        assert exc_info.value.field == "options"

    @pytest.mark.parametrize("raw", [42, None, ["ttrpg"]])
    def test_non_mapping_rejected(self, raw):
        with pytest.raises(MalformedRequest, match="expected a string or mapping") as exc_info:
            normalize_request(raw)
        assert exc_info.value.field == "request"
        assert exc_info.value.plugin_name == repr(raw)

    def test_priority_explicit_tracking(self):
        """Only configured priorities count as explicit."""
        assert normalize_request("ttrpg").priority_is_explicit is False
        assert normalize_request({"name": "ttrpg", "priority": 100}).priority_is_explicit is True

    def test_label_prefers_name_then_path_then_url(self):
        assert PluginRequest(name="a", path="b.py").label == "a"
        assert PluginRequest(path="b.py").label == "b.py"
        assert PluginRequest(url="https://x/y.py").label == "https://x/y.py"
        assert PluginRequest().label == "unknown"


# ===========================================================================
# Classification
# ===========================================================================


class TestClassify:
    """Tests for provenance classification."""

    def _classify(self, raw):
        return classify(normalize_request(raw), BUILTIN_PLUGINS)

    def test_explicit_type_wins(self):
        """An explicit type overrides every inference."""
        assert self._classify({"type": "package", "name": "ttrpg"}) is Provenance.PACKAGE
        assert self._classify({"type": "remote", "path": "a.py", "url": "u"}) is Provenance.REMOTE

    def test_path_is_local(self):
        assert self._classify({"path": "plugins/x.py"}) is Provenance.LOCAL

    def test_path_beats_builtin_name(self):
        assert self._classify({"name": "ttrpg", "path": "ttrpg.py"}) is Provenance.LOCAL

    def test_relative_name_is_local(self):
        assert self._classify("./plugins/x.py") is Provenance.LOCAL
        assert self._classify("../shared/x") is Provenance.LOCAL

    def test_source_extension_is_local(self):
        assert self._classify("callouts.py") is Provenance.LOCAL

    def test_builtin_name(self):
        assert self._classify("ttrpg") is Provenance.BUILTIN
        assert self._classify("dimm_city") is Provenance.BUILTIN

    def test_url_is_remote(self):
        assert self._classify({"url": "https://cdn.example/p.py", "integrity": "sha384-x"}) is Provenance.REMOTE

    def test_builtin_beats_url(self):
        assert self._classify({"name": "ttrpg", "url": "https://x"}) is Provenance.BUILTIN

    def test_other_names_are_packages(self):
        assert self._classify("folio-plugin-maps") is Provenance.PACKAGE
        assert self._classify({"name": "@scope/thing"}) is Provenance.PACKAGE

    def test_empty_request_is_package(self):
        assert self._classify({}) is Provenance.PACKAGE


class TestPathHelpers:
    """Tests for looks_like_path() and local_path_of()."""

    @pytest.mark.parametrize("value,expected", [
        ("./a.py", True),
        ("../a", True),
        ("a.py", True),
        ("ttrpg", False),
        ("", False),
        (None, False),
    ])
    def test_looks_like_path(self, value, expected):
        assert looks_like_path(value) is expected

    def test_local_path_prefers_path_field(self):
        request = PluginRequest(name="./other.py", path="plugins/a.py")
        assert local_path_of(request) == "plugins/a.py"

    def test_local_path_from_name(self):
        assert local_path_of(PluginRequest(name="./a.py")) == "./a.py"

    def test_local_path_from_explicit_type(self):
        request = PluginRequest(type=Provenance.LOCAL, name="plugins/a")
        assert local_path_of(request) == "plugins/a"

    def test_no_local_path_for_package_name(self):
        assert local_path_of(PluginRequest(name="folio-maps")) is None


# ===========================================================================
# Identity
# ===========================================================================


class TestIdentity:
    """Tests for identity_of()."""

    def test_local_identity_normalizes_path(self):
        a = identity_of(PluginRequest(path="./plugins/x.py"), Provenance.LOCAL)
        b = identity_of(PluginRequest(path="plugins/sub/../x.py"), Provenance.LOCAL)
        assert a == b
        assert a.identifier == "plugins/x.py"

    def test_local_identity_ignores_priority_and_options(self):
        a = identity_of(PluginRequest(path="x.py", priority=1), Provenance.LOCAL)
        b = identity_of(PluginRequest(path="x.py", priority=900, options={"k": 1}), Provenance.LOCAL)
        assert a == b

    def test_package_identity_includes_version(self):
        plain = identity_of(PluginRequest(name="maps"), Provenance.PACKAGE)
        pinned = identity_of(PluginRequest(name="maps", version=">=2.0"), Provenance.PACKAGE)
        assert plain.identifier == "maps"
        assert pinned.identifier == "maps@>=2.0"
        assert plain != pinned

    def test_remote_identity_is_url(self):
        identity = identity_of(PluginRequest(url="https://x/p.py"), Provenance.REMOTE)
        assert identity.identifier == "https://x/p.py"

    def test_builtin_identity_is_name(self):
        identity = identity_of(PluginRequest(name="ttrpg"), Provenance.BUILTIN)
        assert identity == PluginIdentity(Provenance.BUILTIN, "ttrpg")

    def test_same_identifier_different_provenance(self):
        """Provenance is part of the identity."""
        local = identity_of(PluginRequest(name="x.py", path="x.py"), Provenance.LOCAL)
        package = identity_of(PluginRequest(name="x.py"), Provenance.PACKAGE)
        assert local != package

    def test_str(self):
        assert str(PluginIdentity(Provenance.BUILTIN, "ttrpg")) == "builtin:ttrpg"

    def test_identity_is_hashable(self):
        identity = identity_of(PluginRequest(name="ttrpg"), Provenance.BUILTIN)
        assert {identity: 1}[PluginIdentity(Provenance.BUILTIN, "ttrpg")] == 1
