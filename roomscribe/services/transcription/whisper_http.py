"""Remote whisper backend speaking the whisper-asr-webservice HTTP API."""
from __future__ import annotations

import logging
import os
from typing import Optional

import requests

from roomscribe.services.transcription.base import (
    TranscriptionProvider,
    TranscriptionProviderError,
    trim_context_hint,
)


class WhisperHttpProvider(TranscriptionProvider):
    def __init__(self, base_url: str, timeout: float = 120.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._logger = logging.getLogger("roomscribe.transcription.http")

    def transcribe(
        self,
        audio_path: str,
        *,
        language: Optional[str] = None,
        context_hint: Optional[str] = None,
    ) -> str:
        if not os.path.exists(audio_path):
            raise TranscriptionProviderError("Audio file not found")

        params = {"output": "txt", "task": "transcribe"}
        if language:
            params["language"] = language
        prompt = trim_context_hint(context_hint)
        if prompt:
            params["initial_prompt"] = prompt

        try:
            with open(audio_path, "rb") as audio_file:
                response = requests.post(
                    f"{self._base_url}/asr",
                    params=params,
                    files={"audio_file": (os.path.basename(audio_path), audio_file, "audio/wav")},
                    timeout=self._timeout,
                )
        except requests.RequestException as exc:
            raise TranscriptionProviderError("Failed to reach whisper HTTP API") from exc
        except OSError as exc:
            raise TranscriptionProviderError(f"Failed to read audio: {exc}") from exc

        if response.status_code != 200:
            self._logger.error(
                "Whisper HTTP error: %s - %s", response.status_code, response.text[:500]
            )
            raise TranscriptionProviderError(f"Whisper HTTP error: {response.status_code}")

        return response.text.strip()
