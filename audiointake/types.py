from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional

import numpy as np


def seconds_to_samples(seconds: float, sample_rate: int) -> int:
    return int(round(float(seconds) * float(sample_rate)))


@dataclass(frozen=True)
class AcquisitionRequest:
    kind: Literal["file", "stream", "mic"]
    sample_rate: int
    seconds: float
    start_at: float = 0.0  # file sources only
    source: Optional[str] = None  # path, URL or None for the default device
    device: Optional[int] = None

    @property
    def target_count(self) -> int:
        return seconds_to_samples(self.seconds, self.sample_rate)


@dataclass(frozen=True)
class AudioSamples:
    samples: np.ndarray  # float32 mono, read-only
    sample_rate: int
    source: str
    requested_count: int = 0

    def __post_init__(self) -> None:
        samples = np.array(self.samples, dtype=np.float32).reshape(-1)
        samples.setflags(write=False)
        object.__setattr__(self, "samples", samples)

    def __len__(self) -> int:
        return int(self.samples.size)

    @property
    def duration_sec(self) -> float:
        return float(self.samples.size) / float(self.sample_rate) if self.sample_rate > 0 else 0.0

    @property
    def truncated(self) -> bool:
        """True when the source ended before the requested length was reached."""
        return int(self.samples.size) < int(self.requested_count)
