from __future__ import annotations

import logging
import math

import numpy as np

from audiointake.audio.chunk import SampleChunk
from audiointake.audio.decoder import Decoder, frame_bytes
from audiointake.dsp.convert import to_mono
from audiointake.dsp.resample import StreamResampler

logger = logging.getLogger(__name__)

_MIN_READ_FRAMES = 1024


def seek_byte_offset(decoder: Decoder, start_at: float) -> int:
    return int(math.floor(float(decoder.sample_rate) * frame_bytes(decoder) * float(start_at)))


class DecodedSampleSource:
    """Mono float samples at ``sample_rate`` read from a decoder.

    A non-zero ``start_at`` is applied lazily, so a seek past the end fails on
    the first pull instead of at construction. A live decoder that has no data
    yet yields a short or empty chunk without finishing the source.
    """

    def __init__(self, decoder: Decoder, *, sample_rate: int, start_at: float = 0.0) -> None:
        if float(start_at) < 0:
            raise ValueError("start_at must be >= 0")
        self._decoder = decoder
        self._sample_rate = int(sample_rate)
        self._start_at = float(start_at)
        self._positioned = False
        self._resampler = StreamResampler(int(decoder.sample_rate), self._sample_rate)
        self._pending = np.zeros((0,), dtype=np.float32)
        self._eof = False

    @property
    def sample_rate(self) -> int:
        return self._sample_rate

    @property
    def finished(self) -> bool:
        return bool(self._eof and self._pending.size == 0)

    def _ensure_positioned(self) -> None:
        if self._positioned:
            return
        self._positioned = True
        if self._start_at > 0:
            offset = seek_byte_offset(self._decoder, self._start_at)
            logger.debug(f"Seeking {self._decoder.source} to byte {offset} ({self._start_at:.3f}s)")
            self._decoder.seek(offset)

    def _fill(self, wanted: int) -> None:
        parts = [self._pending]
        have = int(self._pending.size)
        while have < wanted and not self._eof:
            n_frames = max(_MIN_READ_FRAMES, self._resampler.input_frames_for(wanted - have))
            frames = self._decoder.read_frames(n_frames)
            if frames.shape[0] == 0:
                if not getattr(self._decoder, "ended", True):
                    # Live decoder with nothing buffered yet; hand back what we have.
                    break
                self._eof = True
                converted = self._resampler.flush()
            else:
                converted = self._resampler.process(to_mono(frames))
            if converted.size:
                parts.append(converted)
                have += int(converted.size)
        self._pending = np.concatenate(parts) if len(parts) > 1 else parts[0]

    def pull(self, max_count: int) -> SampleChunk:
        if int(max_count) <= 0:
            return SampleChunk.empty()
        self._ensure_positioned()
        self._fill(int(max_count))
        out = self._pending[: int(max_count)]
        self._pending = self._pending[int(max_count) :]
        return SampleChunk.of(out)

    def close(self) -> None:
        self._decoder.close()
