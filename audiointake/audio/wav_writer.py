from __future__ import annotations

import logging
from pathlib import Path
from typing import Union

import numpy as np

logger = logging.getLogger(__name__)


def write_wav(
    path: Union[str, Path],
    sample_rate: int,
    samples: np.ndarray,
    *,
    channels: int = 1,
    subtype: str = "FLOAT",
) -> Path:
    """Write samples as an uncompressed WAV; ``samples`` is (frames,) or (frames, channels)."""
    import soundfile as sf  # type: ignore

    path = Path(path)
    audio = np.asarray(samples, dtype=np.float32)
    if audio.ndim == 1:
        audio = audio.reshape((-1, 1))
    if audio.shape[1] != int(channels):
        raise ValueError(f"Expected {int(channels)} channel(s), got shape={audio.shape}")

    path.parent.mkdir(parents=True, exist_ok=True)
    sf.write(str(path), audio, int(sample_rate), subtype=str(subtype), format="WAV")
    logger.info(f"Wrote {audio.shape[0]} frames @ {int(sample_rate)} Hz to {path}")
    return path
