from __future__ import annotations

import logging
from typing import Callable, Optional, Protocol

import numpy as np

logger = logging.getLogger(__name__)

DataCallback = Callable[[bytes], None]
StoppedCallback = Callable[[Optional[BaseException]], None]


class CaptureDevice(Protocol):
    """
    Callback-driven capture device.

    start() begins delivering mono float32 buffers (as raw bytes) to
    ``on_data`` from a thread the caller does not own and returns the
    sample rate actually opened. ``on_stopped`` fires exactly once when
    capture ends, with the error that ended it, if any.
    """

    def start(
        self,
        preferred_sample_rate: int,
        *,
        on_data: DataCallback,
        on_stopped: StoppedCallback,
        block_sec: float = 0.10,
    ) -> int: ...

    def stop(self) -> None: ...


def is_recording_supported() -> bool:
    try:
        import sounddevice as sd  # type: ignore
    except Exception:
        return False
    try:
        sd.query_devices(kind="input")
    except Exception:
        return False
    return True


class MicCapture:
    def __init__(self, device: Optional[int] = None) -> None:
        self._device = device
        self._stream = None
        self._running = False
        self._error: Optional[BaseException] = None
        self._started = False

    @property
    def running(self) -> bool:
        return bool(self._running)

    def start(
        self,
        preferred_sample_rate: int,
        *,
        on_data: DataCallback,
        on_stopped: StoppedCallback,
        block_sec: float = 0.10,
    ) -> int:
        import sounddevice as sd  # type: ignore

        if self._running:
            raise RuntimeError("Microphone capture is already running.")

        self._running = True
        self._started = False
        self._error = None

        def callback(indata: np.ndarray, frames: int, time, status) -> None:  # noqa: ANN001
            if not self._running:
                return
            if status:
                logger.warning(f"Audio callback status: {status}")
            try:
                on_data(indata[:, 0].astype(np.float32, copy=True).tobytes())
            except Exception as exc:
                self._error = exc
                raise sd.CallbackAbort from exc

        def finished_callback() -> None:
            if not self._started:
                return
            self._running = False
            on_stopped(self._error)

        # Prefer the requested SR, but fall back to the device default if unsupported.
        stream_sr = int(preferred_sample_rate)
        try:
            dev_info = sd.query_devices(self._device, "input")
            default_sr = int(dev_info.get("default_samplerate", stream_sr))
        except Exception:
            default_sr = stream_sr

        last_exc: Optional[Exception] = None
        for sr in dict.fromkeys((stream_sr, default_sr)):
            try:
                blocksize = max(0, int(sr * float(block_sec)))
                self._stream = sd.InputStream(
                    samplerate=sr,
                    device=self._device,
                    channels=1,
                    dtype="float32",
                    blocksize=blocksize,
                    callback=callback,
                    finished_callback=finished_callback,
                )
                self._stream.start()
                self._started = True
                stream_sr = int(sr)
                break
            except Exception as exc:
                last_exc = exc
                logger.debug(f"Input stream at {sr} Hz refused: {exc}")
                if self._stream is not None:
                    self._stream.close()
                self._stream = None
                continue

        if self._stream is None:
            self._running = False
            raise RuntimeError("Failed to start microphone capture (sounddevice).") from last_exc

        logger.info(f"Microphone capture started (device={self._device}, sample_rate={stream_sr})")
        return int(stream_sr)

    def stop(self) -> None:
        if self._stream is not None:
            try:
                self._stream.stop()
            finally:
                self._stream.close()
                self._stream = None
                logger.info("Microphone capture stopped")
        self._running = False
