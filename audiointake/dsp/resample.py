from __future__ import annotations

import math

import numpy as np


def _ratio(orig_sr: int, target_sr: int) -> tuple[int, int]:
    orig_sr_i = int(orig_sr)
    target_sr_i = int(target_sr)
    if orig_sr_i <= 0 or target_sr_i <= 0:
        raise ValueError(f"Sample rates must be > 0, got {orig_sr_i} -> {target_sr_i}")
    g = math.gcd(orig_sr_i, target_sr_i)
    return target_sr_i // g, orig_sr_i // g


def _resample_poly(audio: np.ndarray, up: int, down: int) -> np.ndarray:
    try:
        from scipy.signal import resample_poly  # type: ignore
    except Exception as exc:  # pragma: no cover
        raise RuntimeError("scipy is required for resampling") from exc
    return resample_poly(audio, up=up, down=down).astype(np.float32, copy=False)


def _output_length(n_in: int, up: int, down: int) -> int:
    return -(-int(n_in) * up // down)


def resample_audio(audio: np.ndarray, orig_sr: int, target_sr: int) -> np.ndarray:
    """One-shot resample of a whole signal; StreamResampler reproduces it chunk by chunk."""
    audio = audio.astype(np.float32, copy=False).reshape(-1)
    if int(orig_sr) == int(target_sr) or audio.size == 0:
        return audio
    up, down = _ratio(orig_sr, target_sr)
    return _resample_poly(audio, up, down)


class StreamResampler:
    """Chunk-by-chunk resampler whose output does not depend on how input is chunked.

    Every call resamples the retained history plus the new input and keeps only
    the output samples whose filter support lies fully inside the data seen so
    far. History is kept from an input index that is a multiple of ``down``, so
    each retained segment maps onto whole output samples of the one-shot
    result. ``flush()`` emits the tail, zero-padded on the right exactly like
    ``resample_audio`` on the whole signal.
    """

    def __init__(self, orig_sr: int, target_sr: int) -> None:
        self._up, self._down = _ratio(orig_sr, target_sr)
        self._passthrough = int(orig_sr) == int(target_sr)
        # resample_poly's filter spans 10 * max(up, down) taps each side at the upsampled rate.
        self._margin = int(math.ceil(10.0 * max(self._up, self._down) / self._up)) + 2
        self._buf = np.zeros((0,), dtype=np.float32)
        self._base = 0  # input index of _buf[0], always a multiple of down
        self._emitted = 0

    @property
    def up(self) -> int:
        return self._up

    @property
    def down(self) -> int:
        return self._down

    def input_frames_for(self, output_count: int) -> int:
        return int(math.ceil(float(output_count) * self._down / self._up))

    def _emit(self, end: int) -> np.ndarray:
        first = self._base * self._up // self._down
        out = _resample_poly(self._buf, self._up, self._down)[self._emitted - first : end - first]
        self._emitted = end
        return out

    def _trim(self) -> None:
        needed = self._emitted * self._down // self._up - self._margin
        base = max(self._base, (max(0, needed) // self._down) * self._down)
        if base > self._base:
            self._buf = self._buf[base - self._base :].copy()
            self._base = base

    def process(self, audio: np.ndarray) -> np.ndarray:
        audio = audio.astype(np.float32, copy=False).reshape(-1)
        if self._passthrough:
            return audio

        if audio.size:
            self._buf = np.concatenate([self._buf, audio])
        total_in = self._base + int(self._buf.size)
        safe_end = max(0, (total_in - self._margin) * self._up // self._down)
        if safe_end <= self._emitted:
            return np.zeros((0,), dtype=np.float32)
        out = self._emit(safe_end)
        self._trim()
        return out

    def flush(self) -> np.ndarray:
        if self._passthrough:
            return np.zeros((0,), dtype=np.float32)
        total_in = self._base + int(self._buf.size)
        end = _output_length(total_in, self._up, self._down)
        out = self._emit(end) if end > self._emitted else np.zeros((0,), dtype=np.float32)
        self._buf = np.zeros((0,), dtype=np.float32)
        self._base = total_in - total_in % self._down
        return out
