"""Resilient mirror-page link resolution."""

__version__ = "0.1.0"
