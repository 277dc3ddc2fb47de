"""
Daneel Web — Observer Session

One connected observer: a tiny replace-pending outbound queue and the
send loop that drains it. The hub only ever calls `offer()`, which never
awaits, so a slow observer cannot hold up anyone else.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime

from daneel_web.errors import SessionWriteFailure
from daneel_web.primitives.common import new_id

SendText = Callable[[str], Awaitable[None]]


@dataclass(frozen=True)
class Frame:
    """One serialized snapshot, tagged with the snapshot's timestamp."""

    timestamp: datetime
    text: str


class Session:
    """
    Per-observer outbound channel.

    Frames are delivered in non-decreasing timestamp order. When the queue
    is full the oldest pending frame is replaced, so an observer that falls
    behind resumes on the newest snapshot rather than working through a
    backlog.
    """

    def __init__(
        self,
        send: SendText,
        queue_depth: int = 1,
        write_timeout_ms: int = 150,
        session_id: str | None = None,
        remote: str | None = None,
    ) -> None:
        self.id: str = session_id or new_id()
        self.remote = remote
        self._send = send
        self._queue: asyncio.Queue[Frame] = asyncio.Queue(maxsize=queue_depth)
        self._write_timeout_s = write_timeout_ms / 1000.0
        self._last_offered: datetime | None = None
        self._last_sent: datetime | None = None
        self._closed = asyncio.Event()

        self.frames_sent: int = 0
        self.frames_replaced: int = 0
        self.frames_discarded: int = 0

    @property
    def alive(self) -> bool:
        return not self._closed.is_set()

    @property
    def last_sent_timestamp(self) -> datetime | None:
        """Timestamp of the last frame actually written to the observer."""
        return self._last_sent

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def queue_depth(self) -> int:
        return self._queue.maxsize

    def offer(self, frame: Frame) -> bool:
        """
        Enqueue a frame without waiting. Returns False if it was not taken.

        A frame older than one already offered is discarded.
        """
        if self._closed.is_set():
            return False
        if self._last_offered is not None and frame.timestamp < self._last_offered:
            self.frames_discarded += 1
            return False

        self._last_offered = frame.timestamp
        while self._queue.full():
            self._queue.get_nowait()
            self.frames_replaced += 1
        self._queue.put_nowait(frame)
        return True

    async def run(self) -> None:
        """
        Drain the queue until closed.

        Raises SessionWriteFailure when a write fails or exceeds the write
        timeout. The caller owns eviction.
        """
        while not self._closed.is_set():
            frame = await self._queue.get()
            try:
                await asyncio.wait_for(self._send(frame.text), timeout=self._write_timeout_s)
            except asyncio.TimeoutError as exc:
                raise SessionWriteFailure(
                    self.id, f"write exceeded {self._write_timeout_s * 1000:.0f} ms"
                ) from exc
            except Exception as exc:
                raise SessionWriteFailure(self.id, str(exc) or type(exc).__name__) from exc
            self.frames_sent += 1
            self._last_sent = frame.timestamp

    def close(self) -> None:
        self._closed.set()

    async def wait_closed(self) -> None:
        await self._closed.wait()
