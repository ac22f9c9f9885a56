from __future__ import annotations

from dataclasses import dataclass

import numpy as np


@dataclass
class SampleChunk:
    samples: np.ndarray  # float32 mono, may be longer than count
    count: int

    @property
    def valid(self) -> np.ndarray:
        return self.samples[: int(self.count)]

    @classmethod
    def of(cls, samples: np.ndarray) -> "SampleChunk":
        samples = np.asarray(samples, dtype=np.float32).reshape(-1)
        return cls(samples=samples, count=int(samples.size))

    @classmethod
    def empty(cls) -> "SampleChunk":
        return cls(samples=np.zeros((0,), dtype=np.float32), count=0)
