"""
Chunk ingestion and dispatch.

``submit`` only does bookkeeping and hands the chunk to a shared, bounded
worker pool, so callers never wait on speech-to-text latency. Workers may
finish in any order; the store keeps results keyed by index and assembly
sorts them later.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from roomscribe.config import StreamingConfig
from roomscribe.services.chunk_transcriber import ChunkAudio, ChunkTranscriptionAdapter
from roomscribe.services.overlap import clean_transcript_text
from roomscribe.services.room_registry import RoomRegistry, validate_room_id
from roomscribe.services.room_store import RoomTranscriptState


@dataclass(frozen=True)
class SubmitResult:
    room_id: str
    chunk_index: int
    accepted: bool
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        payload = {
            "success": self.accepted,
            "accepted": self.accepted,
            "roomSid": self.room_id,
            "chunkIndex": self.chunk_index,
        }
        if self.reason:
            payload["reason"] = self.reason
        return payload


def validate_chunk_index(chunk_index: int) -> int:
    if isinstance(chunk_index, bool) or not isinstance(chunk_index, int) or chunk_index < 0:
        raise ValueError(f"Chunk index must be a non-negative integer, got {chunk_index!r}")
    return chunk_index


class ChunkDispatcher:
    """Schedules chunk transcription on a pool shared by every room."""

    def __init__(
        self,
        registry: RoomRegistry,
        adapter: ChunkTranscriptionAdapter,
        config: StreamingConfig,
    ) -> None:
        self._registry = registry
        self._adapter = adapter
        self._config = config
        self._executor = ThreadPoolExecutor(
            max_workers=config.workers,
            thread_name_prefix="chunk-worker",
        )
        self._logger = logging.getLogger("roomscribe.dispatch")
        self._trace_logger = logging.getLogger("roomscribe.trace")
        self._logger.info("Chunk dispatcher ready: workers=%s", config.workers)

    def _trace(self, stage: str, **fields) -> None:
        payload = " ".join(f"{k}={fields[k]!r}" for k in sorted(fields.keys()))
        self._trace_logger.info("TRACE stage=%s ts=%s %s", stage, datetime.now(timezone.utc).isoformat(), payload)

    def submit(
        self,
        room_id: str,
        chunk_index: int,
        audio_bytes: bytes,
        *,
        has_overlap: bool = True,
        audio_format: str = "webm",
        sample_rate: Optional[int] = None,
        channels: Optional[int] = None,
    ) -> SubmitResult:
        """Accept a chunk for background transcription. Never waits on the backend.

        Raises:
            ValueError: invalid room id or negative chunk index
        """
        validate_room_id(room_id)
        validate_chunk_index(chunk_index)

        state = self._registry.get_or_create(room_id)
        if not state.try_begin_chunk(chunk_index, has_overlap=has_overlap):
            self._logger.warning(
                "Room %s is already finalized, ignoring chunk %s", room_id, chunk_index
            )
            return SubmitResult(room_id, chunk_index, accepted=False, reason="finalized")

        chunk = ChunkAudio(
            room_id=room_id,
            chunk_index=chunk_index,
            audio_bytes=audio_bytes,
            audio_format=audio_format,
            sample_rate=sample_rate,
            channels=channels,
        )
        try:
            future = self._executor.submit(self._process_chunk, state, chunk)
        except RuntimeError as exc:
            # Pool already shut down; undo the in-flight registration.
            state.end_chunk()
            self._logger.warning("Rejecting chunk %s for room %s: %s", chunk_index, room_id, exc)
            return SubmitResult(room_id, chunk_index, accepted=False, reason="shutting_down")
        future.add_done_callback(lambda f: self._release_cancelled(f, state, chunk))

        self._trace(
            "chunk_queued",
            room_id=room_id,
            chunk_index=chunk_index,
            bytes=len(audio_bytes),
            has_overlap=has_overlap,
        )
        return SubmitResult(room_id, chunk_index, accepted=True)

    def _process_chunk(self, state: RoomTranscriptState, chunk: ChunkAudio) -> None:
        start_time = time.perf_counter()
        try:
            if state.sealed:
                self._logger.warning(
                    "Dropping queued chunk %s for room %s: transcript already assembled",
                    chunk.chunk_index,
                    chunk.room_id,
                )
                return

            context_hint = self._context_hint(state, chunk.chunk_index)
            outcome = self._adapter.transcribe(chunk, context_hint=context_hint)
            if not outcome.ok:
                self._logger.warning(
                    "Dropping chunk %s for room %s: %s",
                    chunk.chunk_index,
                    chunk.room_id,
                    outcome.error,
                )
                return

            text = clean_transcript_text(outcome.text or "")
            if len(text) < self._config.min_text_chars:
                self._logger.warning(
                    "Dropping chunk %s for room %s: empty or too-short transcript",
                    chunk.chunk_index,
                    chunk.room_id,
                )
                return

            if not state.put_chunk(chunk.chunk_index, text):
                return

            elapsed_ms = (time.perf_counter() - start_time) * 1000
            self._logger.info(
                "Chunk %s for room %s transcribed in %.0fms: %s",
                chunk.chunk_index,
                chunk.room_id,
                elapsed_ms,
                text[:50],
            )
        except Exception as exc:
            self._logger.exception(
                "Error processing chunk %s for room %s: %s", chunk.chunk_index, chunk.room_id, exc
            )
        finally:
            state.end_chunk()
            self._trace("chunk_resolved", room_id=chunk.room_id, chunk_index=chunk.chunk_index)

    def _release_cancelled(self, future, state: RoomTranscriptState, chunk: ChunkAudio) -> None:
        # Cancelled work never reaches _process_chunk, so its in-flight slot is released here.
        if future.cancelled():
            state.end_chunk()
            self._trace("chunk_cancelled", room_id=chunk.room_id, chunk_index=chunk.chunk_index)

    def _context_hint(self, state: RoomTranscriptState, chunk_index: int) -> Optional[str]:
        """Trailing words of the previous chunk, if it has already been transcribed."""
        if chunk_index == 0:
            return None
        previous = state.get_chunk(chunk_index - 1)
        if not previous:
            return None
        return " ".join(previous.split()[-self._config.context_hint_words:])

    def shutdown(self, wait: bool = False) -> None:
        self._executor.shutdown(wait=wait, cancel_futures=True)
        self._logger.info("Chunk dispatcher stopped")
