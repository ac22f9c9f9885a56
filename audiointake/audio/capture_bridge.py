from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Optional

import numpy as np

from audiointake.aggregator import SamplesAggregator
from audiointake.audio.capture_queue import CaptureQueue
from audiointake.audio.mic_capture import CaptureDevice
from audiointake.dsp.convert import float32_from_bytes
from audiointake.dsp.resample import StreamResampler
from audiointake.errors import DeviceError
from audiointake.sources.queued import QueueSampleSource

logger = logging.getLogger(__name__)


class CaptureState(str, Enum):
    IDLE = "idle"
    RECORDING = "recording"
    STOPPING = "stopping"
    COMPLETED = "completed"


class CaptureBridge:
    """
    Feeds a callback-driven capture device into a SamplesAggregator.

    The device callback is the only producer of the internal CaptureQueue
    and record() is its only consumer; the queue is never handed out. Every
    exit path (target reached, external stop(), device error, start failure)
    completes the queue, so record() cannot block forever on a stopped device.
    A bridge records once.
    """

    def __init__(
        self,
        device: CaptureDevice,
        *,
        queue_maxsize: int = 64,
        block_sec: float = 0.10,
        poll_interval: Optional[float] = 0.25,
        source: str = "microphone",
    ) -> None:
        self._device = device
        self._queue = CaptureQueue(maxsize=queue_maxsize)
        self._block_sec = float(block_sec)
        self._poll_interval = poll_interval
        self._source = str(source)
        self._lock = threading.Lock()
        self._state = CaptureState.IDLE
        self._stop_called = False
        self._error: Optional[BaseException] = None
        self._resampler: Optional[StreamResampler] = None
        # Callbacks wait until record() knows the rate the device actually opened at.
        self._ready = threading.Event()

    @property
    def state(self) -> CaptureState:
        return self._state

    @property
    def error(self) -> Optional[BaseException]:
        return self._error

    def _on_data(self, data: bytes) -> None:
        self._ready.wait()
        samples = float32_from_bytes(data)
        if self._resampler is not None:
            samples = self._resampler.process(samples)
        if samples.size:
            self._queue.append(samples)

    def _on_stopped(self, error: Optional[BaseException]) -> None:
        self._ready.wait()
        if error is not None:
            logger.error(f"Capture device failed: {error}")
            self._error = error
        if self._resampler is not None:
            tail = self._resampler.flush()
            if tail.size:
                self._queue.append(tail)
        with self._lock:
            if self._state is CaptureState.RECORDING:
                self._state = CaptureState.STOPPING
        self._queue.complete()

    def record(self, aggregator: SamplesAggregator, seconds: float, sample_rate: int) -> np.ndarray:
        with self._lock:
            if self._state is not CaptureState.IDLE:
                raise RuntimeError(f"CaptureBridge already used (state={self._state.value})")
            if self._stop_called:
                self._state = CaptureState.COMPLETED
                return np.zeros((0,), dtype=np.float32)
            try:
                actual_sr = int(
                    self._device.start(
                        int(sample_rate),
                        on_data=self._on_data,
                        on_stopped=self._on_stopped,
                        block_sec=self._block_sec,
                    )
                )
            except Exception as exc:
                self._queue.complete()
                self._state = CaptureState.COMPLETED
                self._ready.set()
                raise DeviceError(f"Failed to start capture: {exc}", source=self._source) from exc
            if actual_sr != int(sample_rate):
                logger.info(f"Device opened at {actual_sr} Hz, resampling to {int(sample_rate)} Hz")
                self._resampler = StreamResampler(actual_sr, int(sample_rate))
            if self._state is CaptureState.IDLE:
                self._state = CaptureState.RECORDING
            self._ready.set()

        samples = np.zeros((0,), dtype=np.float32)
        try:
            samples = aggregator.read_samples(
                QueueSampleSource(self._queue, poll_interval=self._poll_interval), seconds, sample_rate
            )
        finally:
            # Nothing more is consumed; release a producer blocked on a full queue before stopping.
            self._queue.complete()
            self.stop()

        if self._error is not None:
            raise DeviceError(
                f"Capture device failed after {int(samples.size)} samples: {self._error}",
                source=self._source,
                samples=samples,
            ) from self._error
        return samples

    def stop(self) -> None:
        """Stop capture; safe to call from any thread, any number of times."""
        with self._lock:
            if self._stop_called:
                return
            self._stop_called = True
            if self._state is CaptureState.IDLE:
                self._queue.complete()
                return
            if self._state is CaptureState.RECORDING:
                self._state = CaptureState.STOPPING
        try:
            self._device.stop()
        except Exception as exc:
            logger.error(f"Failed to stop capture device: {exc}")
            if self._error is None:
                self._error = exc
        finally:
            self._queue.complete()
            with self._lock:
                self._state = CaptureState.COMPLETED
