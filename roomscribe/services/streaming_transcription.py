"""Caller-facing surface of the streaming transcript engine."""

from __future__ import annotations

import logging
from typing import Optional

from roomscribe.services.chunk_dispatch import ChunkDispatcher, SubmitResult
from roomscribe.services.finalization import FinalizationCoordinator, FinalizeResult
from roomscribe.services.room_registry import RoomRegistry, validate_room_id
from roomscribe.services.room_store import RoomTranscriptStore, StatusSnapshot, SummaryStatus
from roomscribe.services.summarization import RoomSummary


class StreamingTranscriptionService:
    def __init__(
        self,
        registry: RoomRegistry,
        dispatcher: ChunkDispatcher,
        coordinator: FinalizationCoordinator,
    ) -> None:
        self._registry = registry
        self._store = RoomTranscriptStore(registry)
        self._dispatcher = dispatcher
        self._coordinator = coordinator
        self._logger = logging.getLogger("roomscribe.streaming")

    def start(self, room_id: str, room_name: Optional[str] = None) -> StatusSnapshot:
        """Explicit start signal; otherwise the first chunk creates the room."""
        state = self._registry.get_or_create(room_id, room_name=room_name)
        self._logger.info("Transcription started for room %s", room_id)
        return state.snapshot()

    def submit_chunk(
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
        return self._dispatcher.submit(
            room_id,
            chunk_index,
            audio_bytes,
            has_overlap=has_overlap,
            audio_format=audio_format,
            sample_rate=sample_rate,
            channels=channels,
        )

    def get_status(self, room_id: str) -> StatusSnapshot:
        return self._store.status(room_id)

    def get_partial_transcript(self, room_id: str) -> str:
        return self._coordinator.get_partial_transcript(room_id)

    def finalize(self, room_id: str) -> FinalizeResult:
        return self._coordinator.finalize(room_id)

    def finalize_with_summary(
        self, room_id: str, room_name: Optional[str] = None
    ) -> FinalizeResult:
        return self._coordinator.finalize_with_summary(room_id, room_name=room_name)

    def get_summary(self, room_id: str) -> tuple[SummaryStatus, Optional[RoomSummary]]:
        state = self._registry.get(room_id)
        if state is None:
            return SummaryStatus.NONE, None
        return state.summary_status, state.summary

    def clear(self, room_id: str) -> bool:
        """Forget a room and its staged files. Returns False if it was unknown."""
        validate_room_id(room_id)
        removed = self._registry.remove(room_id)
        if removed is None:
            self._registry.purge_room_files(room_id)
            return False
        self._logger.info("Cleared room %s", room_id)
        return True
