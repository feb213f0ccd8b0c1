"""Device synchronization engine for REST-controlled astronomical instruments."""

__version__ = "0.1.0"
