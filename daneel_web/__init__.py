"""Daneel Web — read-only live observer for the Daneel cognitive process."""

__version__ = "0.1.0"
