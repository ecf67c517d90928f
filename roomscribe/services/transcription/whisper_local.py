from __future__ import annotations

import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Optional

# Workaround for tqdm threading issue in huggingface_hub downloads
# This must be set before importing faster_whisper
os.environ.setdefault("HF_HUB_DISABLE_PROGRESS_BARS", "1")

from faster_whisper import WhisperModel

from roomscribe.services.transcription.base import (
    TranscriptionProvider,
    TranscriptionProviderError,
    trim_context_hint,
)


@dataclass(frozen=True)
class WhisperConfig:
    model_size: str = "small"
    device: str = "cpu"
    compute_type: str = "int8"
    beam_size: int = 3
    vad_filter: bool = True  # chunk edges are often silence


class FasterWhisperProvider(TranscriptionProvider):
    """Local faster-whisper backend shared by all dispatch workers."""

    def __init__(self, config: WhisperConfig) -> None:
        self._config = config
        self._logger = logging.getLogger("roomscribe.transcription.whisper")
        self._model: Optional[WhisperModel] = None
        self._model_lock = threading.Lock()

    def _get_model(self) -> WhisperModel:
        with self._model_lock:
            if self._model is None:
                self._logger.info(
                    "Loading whisper model: size=%s device=%s compute_type=%s",
                    self._config.model_size,
                    self._config.device,
                    self._config.compute_type,
                )
                self._model = WhisperModel(
                    self._config.model_size,
                    device=self._config.device,
                    compute_type=self._config.compute_type,
                )
            return self._model

    def transcribe(
        self,
        audio_path: str,
        *,
        language: Optional[str] = None,
        context_hint: Optional[str] = None,
    ) -> str:
        if not os.path.exists(audio_path):
            raise TranscriptionProviderError("Audio file not found")

        start_time = time.perf_counter()
        try:
            model = self._get_model()
            segments_iter, _info = model.transcribe(
                audio_path,
                language=language or None,
                initial_prompt=trim_context_hint(context_hint),
                beam_size=self._config.beam_size,
                condition_on_previous_text=False,
                vad_filter=self._config.vad_filter,
            )
            texts = [segment.text.strip() for segment in segments_iter]
        except Exception as exc:
            self._logger.exception("Transcription failed: %s", exc)
            raise TranscriptionProviderError("Transcription failed") from exc

        text = " ".join(t for t in texts if t)
        self._logger.debug(
            "Transcription complete: segments=%s chars=%s duration=%.2fs",
            len(texts),
            len(text),
            time.perf_counter() - start_time,
        )
        return text
