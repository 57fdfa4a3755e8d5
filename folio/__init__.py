"""folio - extensible text transformation for game books."""

__version__ = "0.1.0"
