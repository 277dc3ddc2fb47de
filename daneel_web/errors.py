"""
Daneel Web — Error Hierarchy

All exceptions raised inside the observation pipeline.

Severity guide:
  SourceUnavailable    LOW      -- reuse last-known-good state, mark stale
  MalformedSample      LOW      -- drop the single item, count it
  SessionWriteFailure  LOW      -- evict that one session
  ConfigurationError   FATAL    -- startup only, never raised at runtime
"""

from __future__ import annotations


class DaneelError(RuntimeError):
    """Base for all observation pipeline errors."""


class SourceUnavailable(DaneelError):
    """
    A store adapter call failed or timed out.

    Recovery: the Collector / Projection Engine keep the previous reading
    for that source and flag it stale. Observers only ever see possibly
    stale data, never this error.
    """

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"{source} unavailable: {reason}")
        self.source = source
        self.reason = reason


class MalformedSample(DaneelError):
    """
    One record could not be used: a vector of the wrong dimensionality,
    or a thought entry missing required fields.

    Recovery: the item is dropped and counted; the tick carries on.
    """


class SessionWriteFailure(DaneelError):
    """
    A push to one observer failed or exceeded the write timeout.

    Recovery: the session is removed from the hub. No other session is touched.
    """

    def __init__(self, session_id: str, reason: str) -> None:
        super().__init__(f"session {session_id} write failed: {reason}")
        self.session_id = session_id
        self.reason = reason


class ConfigurationError(DaneelError):
    """Invalid configuration detected at startup. Fatal."""
