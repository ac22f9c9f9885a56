from __future__ import annotations

import logging
import time
from typing import Callable, Optional

from audiointake.audio.chunk import SampleChunk
from audiointake.sources.base import SampleChunkSource

logger = logging.getLogger(__name__)


class ContinuousSampleSource:
    """
    Wraps a source whose exhaustion may be temporary (a live stream).

    An empty pull from the inner source is passed through as "nothing yet"
    after a short pause; ``finished`` never becomes True, so the aggregator's
    stall timeout is what ends a dead stream. With ``reopen`` set, an inner
    source that reports ``finished`` is closed and replaced by a fresh one.
    """

    def __init__(
        self,
        inner: SampleChunkSource,
        *,
        retry_interval: float = 0.05,
        reopen: Optional[Callable[[], SampleChunkSource]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._inner = inner
        self._retry_interval = max(0.0, float(retry_interval))
        self._reopen = reopen
        self._sleep = sleep
        self._empty_pulls = 0

    @property
    def finished(self) -> bool:
        return False

    @property
    def empty_pulls(self) -> int:
        return self._empty_pulls

    def pull(self, max_count: int) -> SampleChunk:
        chunk = self._inner.pull(max_count)
        if chunk.count > 0 or int(max_count) <= 0:
            return chunk

        self._empty_pulls += 1
        if self._reopen is not None and self._inner.finished:
            logger.debug("Inner stream ended, reopening")
            self._inner.close()
            self._inner = self._reopen()
        if self._retry_interval > 0:
            self._sleep(self._retry_interval)
        return chunk

    def close(self) -> None:
        self._inner.close()
