"""Capture Hi-C viewpoint and probe design."""

from vpdesigner.version import __version__

__all__ = ["__version__"]
