from __future__ import annotations

from typing import Optional

import numpy as np


class AcquisitionError(RuntimeError):
    """Acquisition failure tagged with the pipeline stage that raised it."""

    stage = "acquire"

    def __init__(self, message: str, *, source: str = "") -> None:
        self.source = str(source)
        super().__init__(message)


class SourceOpenError(AcquisitionError):
    stage = "open"


class SeekOutOfRangeError(AcquisitionError):
    stage = "seek"


class DecodeError(AcquisitionError):
    stage = "decode"


class DeviceError(AcquisitionError):
    """Capture device failure; ``samples`` holds what was collected before it."""

    stage = "device"

    def __init__(
        self, message: str, *, source: str = "", samples: Optional[np.ndarray] = None
    ) -> None:
        super().__init__(message, source=source)
        self.samples = samples if samples is not None else np.zeros((0,), dtype=np.float32)


class StallTimeoutError(AcquisitionError):
    stage = "stall"
