"""Neurosym command-line interface."""
from __future__ import annotations

from neurosym_core import __version__

__all__ = ["__version__"]
