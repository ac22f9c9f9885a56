from __future__ import annotations

from typing import Optional

import numpy as np

from audiointake.audio.capture_queue import CaptureQueue
from audiointake.audio.chunk import SampleChunk


class QueueSampleSource:
    """Consumer end of a CaptureQueue.

    pull() blocks until a chunk arrives or the queue completes. With a
    ``poll_interval`` it gives up after that long and returns an empty,
    unfinished chunk, leaving the decision to the aggregator's stall timeout.
    """

    def __init__(self, capture_queue: CaptureQueue, *, poll_interval: Optional[float] = None) -> None:
        self._queue = capture_queue
        self._poll_interval = poll_interval
        self._leftover = np.zeros((0,), dtype=np.float32)
        self._finished = False

    @property
    def finished(self) -> bool:
        return self._finished

    def pull(self, max_count: int) -> SampleChunk:
        if int(max_count) <= 0 or self._finished:
            return SampleChunk.empty()

        if self._leftover.size == 0:
            samples = self._queue.take(timeout=self._poll_interval)
            if samples is None:
                if self._queue.completed and len(self._queue) == 0:
                    self._finished = True
                return SampleChunk.empty()
            self._leftover = samples

        # A hardware buffer larger than the request is split across pulls.
        out = self._leftover[: int(max_count)]
        self._leftover = self._leftover[int(max_count) :]
        return SampleChunk.of(out)

    def close(self) -> None:
        self._leftover = np.zeros((0,), dtype=np.float32)
