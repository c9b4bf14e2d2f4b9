"""Batch synchronization of local git clones with their remotes."""

__version__ = "0.3.0"

__all__ = ["__version__"]
