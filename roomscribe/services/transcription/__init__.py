from roomscribe.config import TranscriptionConfig
from roomscribe.services.transcription.base import (
    TranscriptionProvider,
    TranscriptionProviderError,
)
from roomscribe.services.transcription.whisper_http import WhisperHttpProvider


def create_transcription_provider(config: TranscriptionConfig) -> TranscriptionProvider:
    """Build the configured speech-to-text backend."""
    provider = config.provider.lower()
    if provider in ("http", "api"):
        return WhisperHttpProvider(config.http_url, timeout=config.http_timeout_seconds)
    if provider == "faster-whisper":
        # Imported here so the HTTP mode never loads the model runtime.
        from roomscribe.services.transcription.whisper_local import (
            FasterWhisperProvider,
            WhisperConfig,
        )

        return FasterWhisperProvider(
            WhisperConfig(
                model_size=config.model_size,
                device=config.device,
                compute_type=config.compute_type,
            )
        )
    raise RuntimeError(f"Unsupported transcription provider: {config.provider}")


__all__ = [
    "TranscriptionProvider",
    "TranscriptionProviderError",
    "WhisperHttpProvider",
    "create_transcription_provider",
]
