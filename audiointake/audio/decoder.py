from __future__ import annotations

import logging
import queue
import subprocess
import threading
from collections import deque
from pathlib import Path
from typing import Optional, Protocol, Union

import numpy as np

from audiointake.dsp.convert import pcm_to_float32
from audiointake.errors import AcquisitionError, DecodeError, SeekOutOfRangeError, SourceOpenError

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS: tuple[str, ...] = (".wav", ".flac", ".ogg", ".aiff", ".mp3")

# soundfile subtype -> bits per sample; compressed subtypes decode as 16-bit PCM.
_SUBTYPE_BITS = {
    "PCM_S8": 8,
    "PCM_U8": 8,
    "PCM_16": 16,
    "PCM_24": 24,
    "PCM_32": 32,
    "FLOAT": 32,
    "DOUBLE": 64,
}


class Decoder(Protocol):
    """Finite or live PCM source opened on one file/URL.

    read_frames() returns an array shaped (frames, channels) of float32. File
    decoders return zero frames only at the end; a live decoder may also return
    zero frames while it waits for data and exposes an ``ended`` flag to tell
    the two apart.
    """

    source: str
    sample_rate: int
    bits_per_sample: int
    channels: int

    def seek(self, byte_offset: int) -> None: ...
    def read_frames(self, max_frames: int) -> np.ndarray: ...
    def close(self) -> None: ...


def frame_bytes(decoder: Decoder) -> int:
    return max(1, int(decoder.bits_per_sample) // 8) * max(1, int(decoder.channels))


def is_url(source: Union[str, Path]) -> bool:
    return "://" in str(source)


class SoundFileDecoder:
    def __init__(self, path: Union[str, Path]) -> None:
        import soundfile as sf  # type: ignore

        self.source = str(path)
        try:
            self._file = sf.SoundFile(self.source, mode="r")
        except Exception as exc:
            raise SourceOpenError(f"soundfile could not open {self.source}: {exc}", source=self.source) from exc

        self.sample_rate = int(self._file.samplerate)
        self.channels = int(self._file.channels)
        self.bits_per_sample = int(_SUBTYPE_BITS.get(str(self._file.subtype), 16))

    @property
    def frames(self) -> int:
        return int(self._file.frames)

    def seek(self, byte_offset: int) -> None:
        frame = int(byte_offset) // frame_bytes(self)
        if frame > self.frames:
            raise SeekOutOfRangeError(
                f"Seek to frame {frame} is past the end of {self.source} ({self.frames} frames)",
                source=self.source,
            )
        self._file.seek(frame)

    def read_frames(self, max_frames: int) -> np.ndarray:
        try:
            return self._file.read(int(max_frames), dtype="float32", always_2d=True)
        except Exception as exc:
            raise DecodeError(f"Failed to read {self.source}: {exc}", source=self.source) from exc

    def close(self) -> None:
        self._file.close()


class PydubDecoder:
    """Decodes the whole file through pydub/ffmpeg and serves frames from memory."""

    def __init__(self, path: Union[str, Path]) -> None:
        try:
            from pydub import AudioSegment  # type: ignore
        except Exception as exc:  # pragma: no cover
            raise SourceOpenError(
                "Failed to decode audio. For MP3, install ffmpeg and `pydub`.", source=str(path)
            ) from exc

        self.source = str(path)
        try:
            seg = AudioSegment.from_file(self.source)
        except Exception as exc:
            raise SourceOpenError(f"pydub could not open {self.source}: {exc}", source=self.source) from exc

        self.sample_rate = int(seg.frame_rate)
        self.channels = int(seg.channels)
        self.bits_per_sample = int(seg.sample_width) * 8

        samples = np.array(seg.get_array_of_samples())
        self._audio = pcm_to_float32(samples, seg.sample_width).reshape((-1, self.channels))
        self._pos = 0

    @property
    def frames(self) -> int:
        return int(self._audio.shape[0])

    def seek(self, byte_offset: int) -> None:
        frame = int(byte_offset) // frame_bytes(self)
        if frame > self.frames:
            raise SeekOutOfRangeError(
                f"Seek to frame {frame} is past the end of {self.source} ({self.frames} frames)",
                source=self.source,
            )
        self._pos = frame

    def read_frames(self, max_frames: int) -> np.ndarray:
        start = self._pos
        end = min(self.frames, start + int(max_frames))
        self._pos = end
        return self._audio[start:end]

    def close(self) -> None:
        self._audio = np.zeros((0, self.channels), dtype=np.float32)


class FfmpegStreamDecoder:
    """Pipes a network stream through ffmpeg as mono float32 at ``sample_rate``.

    Daemon threads drain ffmpeg's stdout into a bounded queue and its stderr
    into a short tail, so a stalled stream never blocks the reader:
    read_frames() returns zero frames after ``read_timeout`` without data and
    ``ended`` tells that apart from the end of the stream. A non-zero ffmpeg
    exit is a SourceOpenError before any audio arrived and a DecodeError after.
    """

    bits_per_sample = 32
    channels = 1

    def __init__(
        self,
        url: str,
        *,
        sample_rate: int,
        ffmpeg_bin: str = "ffmpeg",
        read_timeout: float = 0.05,
        queue_maxsize: int = 64,
    ) -> None:
        self.source = str(url)
        self.sample_rate = int(sample_rate)
        self._read_timeout = max(0.0, float(read_timeout))
        cmd = [
            str(ffmpeg_bin),
            "-nostdin",
            "-hide_banner",
            "-loglevel", "error",
            "-i", self.source,
            "-vn",
            "-ac", "1",
            "-ar", str(self.sample_rate),
            "-f", "f32le",
            "-",
        ]
        try:
            self._proc = subprocess.Popen(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
        except OSError as exc:
            raise SourceOpenError(f"Could not start ffmpeg for {self.source}: {exc}", source=self.source) from exc
        self._chunks: "queue.Queue[Optional[bytes]]" = queue.Queue(maxsize=int(queue_maxsize))
        self._stderr_tail: "deque[str]" = deque(maxlen=20)
        self._closing = threading.Event()
        self._pending = b""
        self._bytes_read = 0
        self._eos = False
        self._failure: Optional[AcquisitionError] = None
        self._stdout_thread = threading.Thread(target=self._pump_stdout, daemon=True)
        self._stderr_thread = threading.Thread(target=self._pump_stderr, daemon=True)
        self._stdout_thread.start()
        self._stderr_thread.start()
        logger.info(f"ffmpeg stream opened: {self.source} @ {self.sample_rate} Hz")

    @property
    def ended(self) -> bool:
        return self._eos and len(self._pending) < 4

    def _put(self, item: Optional[bytes]) -> bool:
        while not self._closing.is_set():
            try:
                self._chunks.put(item, timeout=0.1)
                return True
            except queue.Full:
                continue
        return False

    def _pump_stdout(self) -> None:
        stdout = self._proc.stdout
        assert stdout is not None
        try:
            while True:
                data = stdout.read1(1 << 16)
                if not data or not self._put(data):
                    break
        except (OSError, ValueError) as exc:
            # The pipe is closed under us by close().
            logger.debug(f"ffmpeg stdout reader stopped: {exc}")
        finally:
            self._put(None)

    def _pump_stderr(self) -> None:
        stderr = self._proc.stderr
        assert stderr is not None
        try:
            for line in iter(stderr.readline, b""):
                text = line.decode("utf-8", errors="replace").strip()
                if text:
                    self._stderr_tail.append(text)
                    logger.debug(f"ffmpeg: {text}")
        except (OSError, ValueError) as exc:
            logger.debug(f"ffmpeg stderr reader stopped: {exc}")

    def _take(self, timeout: Optional[float]) -> None:
        """Move queued output into ``_pending``; waits up to ``timeout`` for the first piece."""
        try:
            item = self._chunks.get(timeout=timeout) if timeout else self._chunks.get_nowait()
        except queue.Empty:
            return
        while True:
            if item is None:
                self._eos = True
                self._failure = self._exit_failure()
                return
            self._pending += item
            self._bytes_read += len(item)
            try:
                item = self._chunks.get_nowait()
            except queue.Empty:
                return

    def _exit_failure(self) -> Optional[AcquisitionError]:
        try:
            rc = self._proc.wait(timeout=2.0)
        except subprocess.TimeoutExpired:
            logger.warning(f"ffmpeg closed its output for {self.source} but is still running")
            return None
        self._stderr_thread.join(timeout=1.0)
        if rc == 0:
            return None
        message = " | ".join(self._stderr_tail) or f"ffmpeg exited with code {rc}"
        if self._bytes_read == 0:
            return SourceOpenError(f"Could not open stream {self.source}: {message}", source=self.source)
        return DecodeError(
            f"ffmpeg failed after {self._bytes_read} bytes of {self.source}: {message}", source=self.source
        )

    def _read_bytes(self, max_bytes: int) -> bytes:
        """Up to ``max_bytes`` of whole samples; b"" when nothing arrived in time or the stream ended."""
        if len(self._pending) < 4 and not self._eos:
            self._take(self._read_timeout)
        if len(self._pending) < 4 and self._failure is not None:
            raise self._failure
        usable = min(len(self._pending), max(4, int(max_bytes)))
        usable -= usable % 4
        out, self._pending = self._pending[:usable], self._pending[usable:]
        return out

    def seek(self, byte_offset: int) -> None:
        remaining = int(byte_offset)
        while remaining > 0:
            data = self._read_bytes(min(remaining, 1 << 16))
            if not data and self.ended:
                raise SeekOutOfRangeError(
                    f"Stream {self.source} ended before byte offset {int(byte_offset)}", source=self.source
                )
            remaining -= len(data)

    def read_frames(self, max_frames: int) -> np.ndarray:
        data = self._read_bytes(int(max_frames) * 4)
        return np.frombuffer(data, dtype="<f4").astype(np.float32).reshape((-1, 1))

    def close(self) -> None:
        self._closing.set()
        if self._proc.poll() is None:
            self._proc.terminate()
            try:
                self._proc.wait(timeout=2.0)
            except subprocess.TimeoutExpired:
                self._proc.kill()
                self._proc.wait()
        self._stdout_thread.join(timeout=1.0)
        self._stderr_thread.join(timeout=1.0)
        for pipe in (self._proc.stdout, self._proc.stderr):
            if pipe is not None:
                pipe.close()


def open_decoder(
    source: Union[str, Path],
    *,
    sample_rate: Optional[int] = None,
    ffmpeg_bin: str = "ffmpeg",
    read_timeout: float = 0.05,
) -> Decoder:
    if is_url(source):
        if sample_rate is None:
            raise ValueError("sample_rate is required to open a stream")
        return FfmpegStreamDecoder(
            str(source), sample_rate=int(sample_rate), ffmpeg_bin=ffmpeg_bin, read_timeout=read_timeout
        )

    path = Path(source)
    if not path.exists():
        raise SourceOpenError(f"File not found: {path}", source=str(path))

    try:
        return SoundFileDecoder(path)
    except SourceOpenError as exc:
        logger.debug(f"soundfile rejected {path}, falling back to pydub: {exc}")

    return PydubDecoder(path)
