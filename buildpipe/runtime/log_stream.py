from __future__ import annotations

import logging
import time
from typing import Awaitable, Callable, List, Tuple, Type

logger = logging.getLogger(__name__)

LogSink = Callable[[List[str]], Awaitable[None]]


class LogStreamer:
    """Buffers build output and ships it in batches.

    ``add`` flushes at most once per ``interval``; ``flush(force=True)`` is
    used for the first line and at completion. A sink failure matching
    ``tolerate`` is logged and the batch goes back to the front of the
    buffer for the next flush.
    """

    def __init__(
        self,
        sink: LogSink,
        *,
        interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        tolerate: Tuple[Type[BaseException], ...] = (),
    ) -> None:
        self._sink = sink
        self._interval = interval
        self._clock = clock
        self._tolerate = tolerate
        self._buffer: List[str] = []
        self._last_flush = float("-inf")
        self.flush_count = 0
        self.failed_flushes = 0
        self.line_count = 0

    @property
    def pending(self) -> int:
        return len(self._buffer)

    async def add(self, line: str) -> None:
        self._buffer.append(line)
        self.line_count += 1
        if self._clock() - self._last_flush >= self._interval:
            await self.flush()

    async def flush(self, *, force: bool = False) -> bool:
        """Ship the buffer. Returns False only when a tolerated error kept it."""
        if not self._buffer:
            if force:
                self._last_flush = self._clock()
            return True
        if not force and self._clock() - self._last_flush < self._interval:
            return True
        batch, self._buffer = self._buffer, []
        self._last_flush = self._clock()
        try:
            await self._sink(batch)
        except self._tolerate as e:
            self._buffer[:0] = batch
            self.failed_flushes += 1
            logger.warning("Log flush of %d line(s) failed, keeping them buffered: %s", len(batch), e)
            return False
        self.flush_count += 1
        return True

    def take(self) -> List[str]:
        """Hand back whatever is still buffered and clear it."""
        batch, self._buffer = self._buffer, []
        return batch
