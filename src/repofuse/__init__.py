"""Multi-repository integration pipeline."""

__version__ = "0.1.0"
