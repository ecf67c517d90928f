from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class OverlapConfig:
    """Thresholds for stripping repeated speech at chunk boundaries.

    Clients record chunks with a deliberate tail overlap, so the start of
    chunk N usually repeats the last few words of chunk N-1.
    """
    context_words: int = 30  # how far back into the previous chunk we look
    max_overlap_words: int = 20
    min_overlap_words: int = 2
    fuzzy_min_words: int = 3  # shorter candidates must match exactly
    similarity_threshold: float = 0.75


@dataclass(frozen=True)
class StreamingConfig:
    workers: int
    finalize_timeout_seconds: float = 30.0
    min_text_chars: int = 2
    context_hint_words: int = 30
    finalized_retention_seconds: float = 3600.0
    abandoned_room_seconds: float = 7200.0
    janitor_interval_seconds: float = 60.0
    overlap: OverlapConfig = OverlapConfig()


@dataclass(frozen=True)
class AudioConfig:
    ffmpeg_path: str = "ffmpeg"
    timeout_seconds: float = 120.0
    min_audio_seconds: float = 0.3
    sample_rate: int = 16000


@dataclass(frozen=True)
class TranscriptionConfig:
    provider: str = "faster-whisper"  # "faster-whisper" or "http"
    language: str = "pt"
    model_size: str = "small"
    device: str = "cpu"
    compute_type: str = "int8"
    http_url: str = "http://localhost:9000"
    http_timeout_seconds: float = 120.0


@dataclass(frozen=True)
class WebhookConfig:
    validation_enabled: bool = False
    auth_token: Optional[str] = None
    url: Optional[str] = None


def default_worker_count() -> int:
    """Scale the shared pool to the machine, within 2..8 workers."""
    return max(2, min(os.cpu_count() or 2, 8))


def parse_overlap_config(config_dict: dict) -> OverlapConfig:
    defaults = OverlapConfig()
    return OverlapConfig(
        context_words=int(config_dict.get("context_words", defaults.context_words)),
        max_overlap_words=int(config_dict.get("max_overlap_words", defaults.max_overlap_words)),
        min_overlap_words=int(config_dict.get("min_overlap_words", defaults.min_overlap_words)),
        fuzzy_min_words=int(config_dict.get("fuzzy_min_words", defaults.fuzzy_min_words)),
        similarity_threshold=float(
            config_dict.get("similarity_threshold", defaults.similarity_threshold)
        ),
    )


def parse_streaming_config(config_dict: dict) -> StreamingConfig:
    """Parse the ``streaming`` section of config.json.

    Example:
        {
            "workers": 4,
            "finalize_timeout_seconds": 30,
            "overlap": {"similarity_threshold": 0.75}
        }
    """
    workers = config_dict.get("workers") or default_worker_count()
    return StreamingConfig(
        workers=max(1, int(workers)),
        finalize_timeout_seconds=float(config_dict.get("finalize_timeout_seconds", 30.0)),
        min_text_chars=int(config_dict.get("min_text_chars", 2)),
        context_hint_words=int(config_dict.get("context_hint_words", 30)),
        finalized_retention_seconds=float(config_dict.get("finalized_retention_seconds", 3600.0)),
        abandoned_room_seconds=float(config_dict.get("abandoned_room_seconds", 7200.0)),
        janitor_interval_seconds=float(config_dict.get("janitor_interval_seconds", 60.0)),
        overlap=parse_overlap_config(config_dict.get("overlap", {})),
    )


def parse_audio_config(config_dict: dict) -> AudioConfig:
    return AudioConfig(
        ffmpeg_path=config_dict.get("ffmpeg_path", "ffmpeg"),
        timeout_seconds=float(config_dict.get("timeout_seconds", 120.0)),
        min_audio_seconds=float(config_dict.get("min_audio_seconds", 0.3)),
        sample_rate=int(config_dict.get("sample_rate", 16000)),
    )


def parse_transcription_config(config_dict: dict) -> TranscriptionConfig:
    return TranscriptionConfig(
        provider=config_dict.get("provider", "faster-whisper"),
        language=config_dict.get("language", "pt"),
        model_size=config_dict.get("model_size", "small"),
        device=config_dict.get("device", "cpu"),
        compute_type=config_dict.get("compute_type", "int8"),
        http_url=config_dict.get("http_url", "http://localhost:9000"),
        http_timeout_seconds=float(config_dict.get("http_timeout_seconds", 120.0)),
    )


def parse_webhook_config(config_dict: dict) -> WebhookConfig:
    return WebhookConfig(
        validation_enabled=bool(config_dict.get("validation_enabled", False)),
        auth_token=config_dict.get("auth_token") or None,
        url=config_dict.get("url") or None,
    )
