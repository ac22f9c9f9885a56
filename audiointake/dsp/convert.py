from __future__ import annotations

import numpy as np


def to_mono(audio: np.ndarray) -> np.ndarray:
    if audio.ndim == 1:
        return audio.astype(np.float32, copy=False)
    if audio.ndim != 2:
        raise ValueError(f"Expected 1D/2D audio array, got shape={audio.shape}")
    if audio.shape[1] == 1:
        return audio[:, 0].astype(np.float32, copy=False)
    return audio.mean(axis=1).astype(np.float32, copy=False)


def float32_from_bytes(data: bytes) -> np.ndarray:
    """Interpret a hardware buffer of little-endian IEEE floats; a trailing partial sample is ignored."""
    usable = len(data) - (len(data) % 4)
    return np.frombuffer(data[:usable], dtype="<f4").astype(np.float32, copy=True)


def pcm_to_float32(samples: np.ndarray, sample_width: int) -> np.ndarray:
    max_int = float(1 << (8 * int(sample_width) - 1))
    return samples.astype(np.float32) / max_int
