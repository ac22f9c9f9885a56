"""Shared fakes for acquisition tests."""

import threading
import time

import numpy as np
import pytest

from audiointake.audio.chunk import SampleChunk
from audiointake.errors import SeekOutOfRangeError


class ArrayDecoder:
    """In-memory decoder over a (frames, channels) float32 array."""

    def __init__(self, audio, sample_rate, *, bits_per_sample=32, source="memory"):
        audio = np.asarray(audio, dtype=np.float32)
        if audio.ndim == 1:
            audio = audio.reshape((-1, 1))
        self.source = source
        self.sample_rate = int(sample_rate)
        self.bits_per_sample = int(bits_per_sample)
        self.channels = int(audio.shape[1])
        self._audio = audio
        self._pos = 0
        self.reads = 0
        self.closed = False

    def seek(self, byte_offset):
        frame = int(byte_offset) // (self.bits_per_sample // 8 * self.channels)
        if frame > self._audio.shape[0]:
            raise SeekOutOfRangeError(f"frame {frame} past end", source=self.source)
        self._pos = frame

    def read_frames(self, max_frames):
        self.reads += 1
        start = self._pos
        end = min(self._audio.shape[0], start + int(max_frames))
        self._pos = end
        return self._audio[start:end]

    def close(self):
        self.closed = True


class ScriptedSource:
    """Chunk source that replays a fixed list of chunk sizes (0 = empty pull)."""

    def __init__(self, sizes, *, finish_when_done=True, value_start=0.0):
        self._sizes = list(sizes)
        self._finish_when_done = finish_when_done
        self._next_value = float(value_start)
        self.pulls = 0
        self.requested = []
        self.closed = False

    @property
    def finished(self):
        return self._finish_when_done and not self._sizes

    def pull(self, max_count):
        self.pulls += 1
        self.requested.append(int(max_count))
        if not self._sizes:
            return SampleChunk.empty()
        size = self._sizes.pop(0)
        if size > max_count:
            self._sizes.insert(0, size - max_count)
            size = max_count
        values = np.arange(self._next_value, self._next_value + size, dtype=np.float32)
        self._next_value += size
        # Backing buffer larger than the valid count.
        backing = np.full((size + 3,), -1.0, dtype=np.float32)
        backing[:size] = values
        return SampleChunk(samples=backing, count=size)

    def close(self):
        self.closed = True


class FakeCaptureDevice:
    """Capture device that delivers scripted float32 buffers from its own thread."""

    def __init__(
        self,
        chunks=(),
        *,
        stop_when_done=True,
        error=None,
        start_error=None,
        actual_sample_rate=None,
        delay=0.0,
    ):
        self._chunks = [np.asarray(c, dtype=np.float32) for c in chunks]
        self._stop_when_done = stop_when_done
        self._error = error
        self._start_error = start_error
        self._actual_sample_rate = actual_sample_rate
        self._delay = float(delay)
        self._stop_event = threading.Event()
        self._stopped_once = threading.Lock()
        self._on_stopped = None
        self._thread = None
        self.start_calls = 0
        self.stop_calls = 0

    def start(self, preferred_sample_rate, *, on_data, on_stopped, block_sec=0.10):
        self.start_calls += 1
        if self._start_error is not None:
            raise self._start_error
        self._on_stopped = on_stopped

        def run():
            for chunk in self._chunks:
                if self._stop_event.is_set():
                    break
                if self._delay:
                    time.sleep(self._delay)
                on_data(chunk.tobytes())
            if self._error is not None:
                self._fire_stopped(self._error)
            elif self._stop_when_done:
                self._fire_stopped(None)

        self._thread = threading.Thread(target=run, daemon=True)
        self._thread.start()
        return int(self._actual_sample_rate or preferred_sample_rate)

    def _fire_stopped(self, error):
        if self._stopped_once.acquire(blocking=False):
            self._on_stopped(error)

    def stop(self):
        self.stop_calls += 1
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=5.0)
        if self._on_stopped is not None:
            self._fire_stopped(None)


class StepClock:
    """Monotonic clock that advances by ``step`` on every read."""

    def __init__(self, step=1.0):
        self.now = 0.0
        self.step = float(step)

    def __call__(self):
        self.now += self.step
        return self.now


@pytest.fixture
def write_tone(tmp_path):
    """Write a deterministic float WAV and return (path, audio)."""
    import soundfile as sf

    def _write(name, seconds, sample_rate, channels=1, subtype="FLOAT"):
        frames = int(round(seconds * sample_rate))
        t = np.arange(frames, dtype=np.float32) / float(sample_rate)
        mono = (0.5 * np.sin(2.0 * np.pi * 220.0 * t)).astype(np.float32)
        audio = np.stack([mono * (0.5 + 0.25 * c) for c in range(channels)], axis=1)
        path = tmp_path / name
        sf.write(str(path), audio, int(sample_rate), subtype=subtype)
        return path, audio

    return _write


def write_fake_ffmpeg(directory, body):
    """Write an executable /bin/sh stand-in for ffmpeg and return its path."""
    script = directory / "ffmpeg"
    script.write_text("#!/bin/sh\n" + body + "\n", encoding="utf-8")
    script.chmod(0o755)
    return str(script)
