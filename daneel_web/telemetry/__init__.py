"""
Daneel Web — Observability Infrastructure

Structured logging.
"""

from daneel_web.telemetry.logging import setup_logging

__all__ = ["setup_logging"]
