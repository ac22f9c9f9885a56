from __future__ import annotations

import logging
import time
from typing import Callable, Optional

import numpy as np

from audiointake.errors import StallTimeoutError
from audiointake.sources.base import SampleChunkSource
from audiointake.types import seconds_to_samples

logger = logging.getLogger(__name__)

PREFERRED_CHUNK_SIZE = 4096


class SamplesAggregator:
    """
    Assembles ``round(seconds * sample_rate)`` samples from a chunk source.

    Chunks are copied in pull order into one preallocated buffer. A finished
    source ends the read early and the buffer is truncated to what arrived,
    never padded. An empty pull from a source that is not finished is retried
    until ``stall_timeout`` seconds pass without progress.
    """

    def __init__(
        self,
        *,
        stall_timeout: Optional[float] = 10.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if stall_timeout is not None and float(stall_timeout) < 0:
            raise ValueError("stall_timeout must be >= 0")
        self._stall_timeout = None if stall_timeout is None else float(stall_timeout)
        self._clock = clock

    @property
    def stall_timeout(self) -> Optional[float]:
        return self._stall_timeout

    def read_samples(self, source: SampleChunkSource, seconds: float, sample_rate: int) -> np.ndarray:
        if int(sample_rate) <= 0:
            raise ValueError("sample_rate must be > 0")
        if float(seconds) < 0:
            raise ValueError("seconds must be >= 0")

        target = seconds_to_samples(seconds, sample_rate)
        if target == 0:
            return np.zeros((0,), dtype=np.float32)

        buffer = np.zeros((target,), dtype=np.float32)
        cursor = 0
        last_progress = self._clock()

        while cursor < target:
            wanted = min(PREFERRED_CHUNK_SIZE, target - cursor)
            chunk = source.pull(wanted)
            count = min(int(chunk.count), wanted)
            if count > 0:
                buffer[cursor : cursor + count] = chunk.valid[:count]
                cursor += count
                last_progress = self._clock()
                continue

            if source.finished:
                logger.warning(
                    f"Source exhausted after {cursor} of {target} samples "
                    f"({cursor / float(sample_rate):.2f}s of {float(seconds):.2f}s)"
                )
                return buffer[:cursor].copy()

            idle = self._clock() - last_progress
            if self._stall_timeout is not None and idle > self._stall_timeout:
                raise StallTimeoutError(
                    f"No samples for {idle:.2f}s (stall timeout {self._stall_timeout:.2f}s) "
                    f"after {cursor} of {target} samples"
                )

        return buffer
