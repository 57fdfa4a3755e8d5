"""Transformation units bundled with folio."""

from folio.plugins.builtin.dimm_city import dimm_city_plugin
from folio.plugins.builtin.ttrpg import ttrpg_plugin

__all__ = ["dimm_city_plugin", "ttrpg_plugin"]
