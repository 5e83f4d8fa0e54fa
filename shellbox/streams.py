#!/usr/bin/env python3
"""
Stream and cancellation primitives.

OutputStream is push-based: writes fan out to whoever is subscribed at the
time of the write. InputStream is a pull buffer filled before a command
runs. CancellationToken is a one-way latch polled by long-running commands.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)

StreamCallback = Callable[[str], None]


class OutputStream:
    """Publish/subscribe text channel."""

    def __init__(self):
        self._listeners: List[StreamCallback] = []

    def subscribe(self, callback: StreamCallback) -> Callable[[], None]:
        """Register a listener; returns a function that removes it."""
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def write(self, data: str):
        for listener in list(self._listeners):
            listener(data)

    def write_line(self, data: str = ''):
        self.write(data + '\n')

    def clear(self):
        self._listeners = []


class InputStream:
    """Append/consume text buffer."""

    def __init__(self, data: str = ''):
        self._buffer = data

    def write(self, data: str):
        self._buffer += data

    def read(self) -> str:
        """Drain and return everything buffered."""
        data = self._buffer
        self._buffer = ''
        return data

    def read_line(self) -> Optional[str]:
        """Drain up to the first newline, returning the line without it.

        Returns None when no complete line is buffered.
        """
        idx = self._buffer.find('\n')
        if idx == -1:
            return None
        line = self._buffer[:idx]
        self._buffer = self._buffer[idx + 1:]
        return line

    def peek(self) -> str:
        return self._buffer

    def clear(self):
        self._buffer = ''


class CancellationToken:
    """Cooperative cancellation flag.

    cancel() is idempotent: callbacks run once, in registration order, and
    are dropped afterwards.
    """

    def __init__(self):
        self._cancelled = False
        self._callbacks: List[Callable[[], None]] = []

    def cancel(self):
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception:
                logger.exception("cancellation callback failed")

    def is_cancelled(self) -> bool:
        return self._cancelled

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback; runs immediately if already cancelled."""
        if self._cancelled:
            callback()
            return lambda: None
        self._callbacks.append(callback)

        def remove():
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return remove

    async def sleep(self, seconds: float) -> bool:
        """Wait for a timer or cancellation, whichever comes first.

        Returns True if the full delay elapsed, False if cancelled.
        """
        if self._cancelled:
            return False
        waiter = asyncio.get_running_loop().create_future()

        def wake():
            if not waiter.done():
                waiter.set_result(None)

        remove = self.on_cancel(wake)
        try:
            await asyncio.wait({waiter}, timeout=max(seconds, 0))
        finally:
            remove()
            if not waiter.done():
                waiter.cancel()
        return not self._cancelled


@dataclass
class IOStreams:
    """Per-invocation stream set handed to a command."""
    stdin: InputStream = field(default_factory=InputStream)
    stdout: OutputStream = field(default_factory=OutputStream)
    stderr: OutputStream = field(default_factory=OutputStream)
    signal: Optional[CancellationToken] = None

    def cancelled(self) -> bool:
        return self.signal is not None and self.signal.is_cancelled()


class StreamBuffer:
    """Collects everything written to an OutputStream."""

    def __init__(self, stream: Optional[OutputStream] = None):
        self.stream = stream or OutputStream()
        self._chunks: List[str] = []
        self._unsubscribe = self.stream.subscribe(self._chunks.append)

    def getvalue(self) -> str:
        return ''.join(self._chunks)

    def close(self):
        self._unsubscribe()


def create_io(stdin: str = '', signal: Optional[CancellationToken] = None) -> IOStreams:
    return IOStreams(stdin=InputStream(stdin), signal=signal)
