from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional


@dataclass(frozen=True)
class CaptureConfig:
    device: Optional[int] = None
    block_sec: float = 0.10
    queue_maxsize: int = 64
    stall_timeout_sec: float = 5.0


@dataclass(frozen=True)
class StreamConfig:
    stall_timeout_sec: float = 10.0
    retry_interval_sec: float = 0.05
    reconnect: bool = False
    ffmpeg_bin: str = "ffmpeg"


@dataclass(frozen=True)
class OutputConfig:
    wav_subtype: str = "FLOAT"  # IEEE float WAV


@dataclass(frozen=True)
class AppConfig:
    sample_rate: int = 5512
    capture: CaptureConfig = CaptureConfig()
    stream: StreamConfig = StreamConfig()
    output: OutputConfig = OutputConfig()


def _get(d: dict[str, Any], key: str, default: Any) -> Any:
    value = d.get(key, default)
    return default if value is None else value


def _optional_int(value: Any) -> Optional[int]:
    return None if value is None else int(value)


def load_config(path: Path) -> AppConfig:
    path = Path(path)
    if not path.exists():
        return AppConfig()

    try:
        import yaml  # type: ignore
    except Exception as exc:  # pragma: no cover
        raise RuntimeError("PyYAML is required to read the acquisition config") from exc

    raw = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        return AppConfig()

    capture_raw = raw.get("capture", {}) or {}
    stream_raw = raw.get("stream", {}) or {}
    output_raw = raw.get("output", {}) or {}

    return AppConfig(
        sample_rate=int(_get(raw, "sample_rate", 5512)),
        capture=CaptureConfig(
            device=_optional_int(capture_raw.get("device")),
            block_sec=float(_get(capture_raw, "block_sec", 0.10)),
            queue_maxsize=int(_get(capture_raw, "queue_maxsize", 64)),
            stall_timeout_sec=float(_get(capture_raw, "stall_timeout_sec", 5.0)),
        ),
        stream=StreamConfig(
            stall_timeout_sec=float(_get(stream_raw, "stall_timeout_sec", 10.0)),
            retry_interval_sec=float(_get(stream_raw, "retry_interval_sec", 0.05)),
            reconnect=bool(_get(stream_raw, "reconnect", False)),
            ffmpeg_bin=str(_get(stream_raw, "ffmpeg_bin", "ffmpeg")),
        ),
        output=OutputConfig(
            wav_subtype=str(_get(output_raw, "wav_subtype", "FLOAT")),
        ),
    )
