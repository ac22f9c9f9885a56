from __future__ import annotations

from typing import Protocol

from audiointake.audio.chunk import SampleChunk


class SampleChunkSource(Protocol):
    """
    Pull-based sample provider.

    pull(n) returns a chunk with 0 <= count <= n valid samples. A zero-count
    chunk together with ``finished`` means no more data will ever arrive; a
    zero-count chunk while ``finished`` is False means "nothing yet".
    """

    @property
    def finished(self) -> bool: ...

    def pull(self, max_count: int) -> SampleChunk: ...
    def close(self) -> None: ...
