"""EcoWatch - citizen environmental reporting backend."""

__version__ = "0.1.0"
