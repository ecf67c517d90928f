from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

# whisper.cpp and faster-whisper both cap the initial prompt; keep well under it.
MAX_CONTEXT_HINT_CHARS = 224


class TranscriptionProvider(ABC):
    @abstractmethod
    def transcribe(
        self,
        audio_path: str,
        *,
        language: Optional[str] = None,
        context_hint: Optional[str] = None,
    ) -> str:
        """Transcribe one normalized 16 kHz mono WAV file.

        Args:
            audio_path: Path to the normalized audio
            language: Language code hint (e.g. "pt"), None to auto-detect
            context_hint: Trailing words of the previous chunk, used as prompt

        Returns:
            The transcript text (may be empty)

        Raises:
            TranscriptionProviderError: On any backend failure
        """
        raise NotImplementedError

    def name(self) -> str:
        return self.__class__.__name__


class TranscriptionProviderError(RuntimeError):
    pass


def trim_context_hint(context_hint: Optional[str]) -> Optional[str]:
    """Keep the *end* of the hint, which is what the next chunk continues."""
    if not context_hint or not context_hint.strip():
        return None
    hint = context_hint.strip()
    if len(hint) <= MAX_CONTEXT_HINT_CHARS:
        return hint
    return hint[-MAX_CONTEXT_HINT_CHARS:].lstrip()
