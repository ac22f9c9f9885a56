from __future__ import annotations

import functools
import logging
from contextlib import closing
from pathlib import Path
from typing import Callable, Optional, Union

import numpy as np

from audiointake.aggregator import PREFERRED_CHUNK_SIZE, SamplesAggregator
from audiointake.audio.capture_bridge import CaptureBridge
from audiointake.audio.decoder import Decoder, open_decoder
from audiointake.audio.mic_capture import MicCapture
from audiointake.audio.wav_writer import write_wav
from audiointake.config import AppConfig
from audiointake.sources.continuous import ContinuousSampleSource
from audiointake.sources.decoded import DecodedSampleSource
from audiointake.types import AcquisitionRequest, AudioSamples, seconds_to_samples

logger = logging.getLogger(__name__)

DecoderFactory = Callable[[str], Decoder]


def _validate(*, sample_rate: int, seconds: float, start_at: float = 0.0) -> None:
    if int(sample_rate) <= 0:
        raise ValueError("sample_rate must be > 0")
    if float(seconds) < 0:
        raise ValueError("seconds must be >= 0")
    if float(start_at) < 0:
        raise ValueError("start_at must be >= 0")


def _empty(source: str, sample_rate: int) -> AudioSamples:
    return AudioSamples(samples=np.zeros((0,), dtype=np.float32), sample_rate=int(sample_rate), source=source)


def _finish(samples: np.ndarray, *, source: str, sample_rate: int, seconds: float) -> AudioSamples:
    result = AudioSamples(
        samples=samples,
        sample_rate=int(sample_rate),
        source=source,
        requested_count=seconds_to_samples(seconds, sample_rate),
    )
    logger.info(
        f"Acquired {len(result)} samples ({result.duration_sec:.2f}s) from {source}"
        + (" [source ended early]" if result.truncated else "")
    )
    return result


def acquire_from_file(
    path: Union[str, Path],
    *,
    sample_rate: int,
    seconds: float,
    start_at: float = 0.0,
    decoder_factory: DecoderFactory = open_decoder,
) -> AudioSamples:
    """Read ``seconds`` of mono float audio at ``sample_rate`` starting ``start_at`` seconds in.

    A file shorter than requested yields a shorter result with ``truncated`` set.
    """
    _validate(sample_rate=sample_rate, seconds=seconds, start_at=start_at)
    source_id = str(path)
    if seconds_to_samples(seconds, sample_rate) == 0:
        return _empty(source_id, sample_rate)

    logger.info(f"Reading {float(seconds):.2f}s from {source_id} at {float(start_at):.2f}s ({int(sample_rate)} Hz)")
    source = DecodedSampleSource(decoder_factory(source_id), sample_rate=int(sample_rate), start_at=float(start_at))
    with closing(source):
        # Files never stall: an empty pull always means end of file.
        samples = SamplesAggregator(stall_timeout=None).read_samples(source, seconds, sample_rate)
    return _finish(samples, source=source_id, sample_rate=sample_rate, seconds=seconds)


def acquire_from_stream(
    url: str,
    *,
    sample_rate: int,
    seconds: float,
    config: Optional[AppConfig] = None,
    decoder_factory: Optional[DecoderFactory] = None,
) -> AudioSamples:
    """Read ``seconds`` of a live or open-ended stream; a stream idle past the stall timeout fails."""
    _validate(sample_rate=sample_rate, seconds=seconds)
    config = config or AppConfig()
    if seconds_to_samples(seconds, sample_rate) == 0:
        return _empty(str(url), sample_rate)

    factory = decoder_factory or functools.partial(
        open_decoder,
        sample_rate=int(sample_rate),
        ffmpeg_bin=config.stream.ffmpeg_bin,
        read_timeout=config.stream.retry_interval_sec,
    )

    def open_source() -> DecodedSampleSource:
        return DecodedSampleSource(factory(str(url)), sample_rate=int(sample_rate))

    logger.info(f"Reading {float(seconds):.2f}s from stream {url} ({int(sample_rate)} Hz)")
    source = ContinuousSampleSource(
        open_source(),
        retry_interval=config.stream.retry_interval_sec,
        reopen=open_source if config.stream.reconnect else None,
    )
    aggregator = SamplesAggregator(stall_timeout=config.stream.stall_timeout_sec)
    with closing(source):
        samples = aggregator.read_samples(source, seconds, sample_rate)
    return _finish(samples, source=str(url), sample_rate=sample_rate, seconds=seconds)


def acquire_from_microphone(
    *,
    sample_rate: int,
    seconds: float,
    config: Optional[AppConfig] = None,
    bridge: Optional[CaptureBridge] = None,
) -> AudioSamples:
    """Record up to ``seconds`` from the capture device.

    Pass a ``bridge`` to keep a handle for stopping early from another thread;
    an early stop returns whatever was captured so far.
    """
    _validate(sample_rate=sample_rate, seconds=seconds)
    config = config or AppConfig()
    if seconds_to_samples(seconds, sample_rate) == 0:
        return _empty("microphone", sample_rate)
    if bridge is None:
        bridge = CaptureBridge(
            MicCapture(device=config.capture.device),
            queue_maxsize=config.capture.queue_maxsize,
            block_sec=config.capture.block_sec,
        )

    logger.info(f"Recording {float(seconds):.2f}s from microphone ({int(sample_rate)} Hz)")
    aggregator = SamplesAggregator(stall_timeout=config.capture.stall_timeout_sec)
    samples = bridge.record(aggregator, seconds, sample_rate)
    return _finish(samples, source="microphone", sample_rate=sample_rate, seconds=seconds)


def save_samples(samples: AudioSamples, path: Union[str, Path], *, config: Optional[AppConfig] = None) -> Path:
    config = config or AppConfig()
    return write_wav(path, samples.sample_rate, samples.samples, channels=1, subtype=config.output.wav_subtype)


def acquire_from_stream_to_file(
    url: str,
    path: Union[str, Path],
    *,
    sample_rate: int,
    seconds: float,
    config: Optional[AppConfig] = None,
    decoder_factory: Optional[DecoderFactory] = None,
) -> AudioSamples:
    samples = acquire_from_stream(
        url, sample_rate=sample_rate, seconds=seconds, config=config, decoder_factory=decoder_factory
    )
    save_samples(samples, path, config=config)
    return samples


def acquire_from_microphone_to_file(
    path: Union[str, Path],
    *,
    sample_rate: int,
    seconds: float,
    config: Optional[AppConfig] = None,
    bridge: Optional[CaptureBridge] = None,
) -> AudioSamples:
    samples = acquire_from_microphone(sample_rate=sample_rate, seconds=seconds, config=config, bridge=bridge)
    save_samples(samples, path, config=config)
    return samples


def recode_file_to_mono_wave(
    src: Union[str, Path],
    dst: Union[str, Path],
    *,
    sample_rate: int,
    config: Optional[AppConfig] = None,
    decoder_factory: DecoderFactory = open_decoder,
) -> Path:
    """Decode a whole file, downmix and resample it, and write it as a mono float WAV."""
    _validate(sample_rate=sample_rate, seconds=0.0)
    config = config or AppConfig()
    parts: list[np.ndarray] = []
    source = DecodedSampleSource(decoder_factory(str(src)), sample_rate=int(sample_rate))
    with closing(source):
        while not source.finished:
            chunk = source.pull(PREFERRED_CHUNK_SIZE)
            if chunk.count:
                parts.append(chunk.valid.copy())
    audio = np.concatenate(parts) if parts else np.zeros((0,), dtype=np.float32)
    return write_wav(dst, int(sample_rate), audio, channels=1, subtype=config.output.wav_subtype)


def acquire(request: AcquisitionRequest, *, config: Optional[AppConfig] = None) -> AudioSamples:
    config = config or AppConfig()
    kind = str(request.kind).lower()
    if kind == "file":
        if not request.source:
            raise ValueError("File acquisition needs a source path")
        return acquire_from_file(
            request.source,
            sample_rate=request.sample_rate,
            seconds=request.seconds,
            start_at=request.start_at,
        )
    if kind == "stream":
        if not request.source:
            raise ValueError("Stream acquisition needs a source URL")
        return acquire_from_stream(
            request.source, sample_rate=request.sample_rate, seconds=request.seconds, config=config
        )
    if kind == "mic":
        bridge = None
        if request.device is not None:
            bridge = CaptureBridge(
                MicCapture(device=request.device),
                queue_maxsize=config.capture.queue_maxsize,
                block_sec=config.capture.block_sec,
            )
        return acquire_from_microphone(
            sample_rate=request.sample_rate, seconds=request.seconds, config=config, bridge=bridge
        )
    raise ValueError(f"Unknown acquisition kind '{request.kind}'")
