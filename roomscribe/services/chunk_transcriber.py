"""Stage -> normalize -> transcribe for a single chunk, with failure as a value."""

from __future__ import annotations

import logging
import os
import re
import uuid
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Protocol

from roomscribe.services.audio_converter import AudioConversionError, write_pcm16_wav
from roomscribe.services.transcription.base import (
    TranscriptionProvider,
    TranscriptionProviderError,
)

if TYPE_CHECKING:
    from roomscribe.services.room_registry import RoomRegistry

PCM16_FORMAT = "pcm16"
_FORMAT_RE = re.compile(r"^[a-z0-9]{1,8}$")


class AudioNormalizer(Protocol):
    def normalize(self, input_path: str) -> str:
        ...


@dataclass(frozen=True)
class ChunkTranscription:
    """Outcome of one chunk: ``text`` on success, ``error`` otherwise."""
    text: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.text is not None


@dataclass(frozen=True)
class ChunkAudio:
    room_id: str
    chunk_index: int
    audio_bytes: bytes
    audio_format: str = "webm"
    sample_rate: Optional[int] = None
    channels: Optional[int] = None


class ChunkTranscriptionAdapter:
    """Runs the external backends for one chunk and never raises for backend failures."""

    def __init__(
        self,
        registry: "RoomRegistry",
        normalizer: AudioNormalizer,
        provider: TranscriptionProvider,
        *,
        language: Optional[str] = None,
    ) -> None:
        self._registry = registry
        self._normalizer = normalizer
        self._provider = provider
        self._language = language
        self._logger = logging.getLogger("roomscribe.chunk_transcriber")

    def transcribe(self, chunk: ChunkAudio, context_hint: Optional[str] = None) -> ChunkTranscription:
        if not chunk.audio_bytes:
            return ChunkTranscription(error="empty audio")

        staged_path: Optional[str] = None
        normalized_path: Optional[str] = None
        try:
            staged_path = self._stage(chunk)
            normalized_path = self._normalizer.normalize(staged_path)
            text = self._provider.transcribe(
                normalized_path,
                language=self._language,
                context_hint=context_hint,
            )
            return ChunkTranscription(text=text or "")
        except AudioConversionError as exc:
            return ChunkTranscription(error=f"normalization failed: {exc}")
        except TranscriptionProviderError as exc:
            return ChunkTranscription(error=f"transcription failed: {exc}")
        except OSError as exc:
            return ChunkTranscription(error=f"staging failed: {exc}")
        finally:
            for path in (normalized_path, staged_path):
                if path and os.path.exists(path):
                    try:
                        os.unlink(path)
                    except OSError:
                        self._logger.debug("Could not remove %s", path)

    def _stage(self, chunk: ChunkAudio) -> str:
        room_dir = self._registry.room_dir(chunk.room_id)
        os.makedirs(room_dir, exist_ok=True)

        audio_format = (chunk.audio_format or "webm").lower()
        if audio_format == PCM16_FORMAT:
            path = os.path.join(room_dir, f"chunk_{chunk.chunk_index}_{uuid.uuid4().hex[:8]}.wav")
            try:
                write_pcm16_wav(
                    chunk.audio_bytes,
                    path,
                    samplerate=chunk.sample_rate or 16000,
                    channels=chunk.channels or 1,
                )
            except AudioConversionError:
                raise
            except RuntimeError as exc:
                raise AudioConversionError(f"Invalid PCM payload: {exc}") from exc
            return path

        extension = audio_format if _FORMAT_RE.match(audio_format) else "bin"
        path = os.path.join(room_dir, f"chunk_{chunk.chunk_index}_{uuid.uuid4().hex[:8]}.{extension}")
        with open(path, "wb") as staged:
            staged.write(chunk.audio_bytes)
        return path
