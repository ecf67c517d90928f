"""
Finalization: bounded drain, one-time assembly, optional summary.

Finalize always terminates. It waits for in-flight chunks on the room's
condition variable up to ``finalize_timeout_seconds`` and then assembles
whatever has landed. Only the first caller assembles; concurrent and later
callers get the cached transcript.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Optional, Protocol

from roomscribe.config import StreamingConfig
from roomscribe.services.overlap import assemble_transcript
from roomscribe.services.room_registry import RoomRegistry
from roomscribe.services.room_store import RoomTranscriptState, SummaryStatus
from roomscribe.services.summarization import RoomSummary


class Summarizer(Protocol):
    def summarize_room(
        self, room_id: str, room_name: Optional[str], transcript: str
    ) -> RoomSummary:
        ...


@dataclass(frozen=True)
class FinalizeResult:
    room_id: str
    exists: bool
    transcript: str = ""
    chunk_count: int = 0
    drain_timed_out: bool = False
    summary: Optional[RoomSummary] = None
    summary_status: SummaryStatus = SummaryStatus.NONE

    def to_dict(self) -> dict:
        return {
            "success": self.exists,
            "roomSid": self.room_id,
            "transcription": self.transcript,
            "chunksProcessed": self.chunk_count,
            "drainTimedOut": self.drain_timed_out,
            "summary": self.summary.to_dict() if self.summary else None,
            "summaryStatus": self.summary_status.value,
        }


class FinalizationCoordinator:
    def __init__(
        self,
        registry: RoomRegistry,
        config: StreamingConfig,
        summarizer: Optional[Summarizer] = None,
    ) -> None:
        self._registry = registry
        self._config = config
        self._summarizer = summarizer
        self._logger = logging.getLogger("roomscribe.finalize")

    def finalize(self, room_id: str) -> FinalizeResult:
        state = self._registry.get(room_id)
        if state is None:
            self._logger.info("Finalize requested for unknown room %s", room_id)
            return FinalizeResult(room_id=room_id, exists=False)
        transcript = self._finalize_state(state)
        return self._result(state, transcript)

    def finalize_with_summary(
        self, room_id: str, room_name: Optional[str] = None
    ) -> FinalizeResult:
        """Finalize, then summarize once per room. A summary failure never affects the transcript."""
        state = self._registry.get(room_id)
        if state is None:
            self._logger.info("Finalize requested for unknown room %s", room_id)
            return FinalizeResult(room_id=room_id, exists=False)
        if room_name and not state.room_name:
            state.room_name = room_name

        transcript = self._finalize_state(state)
        self._summarize_once(state, transcript)
        return self._result(state, transcript)

    def get_partial_transcript(self, room_id: str) -> str:
        """Current best transcript without changing room state."""
        state = self._registry.get(room_id)
        if state is None:
            return ""
        cached = state.cached_full_transcript
        if cached is not None:
            return cached
        return assemble_transcript(
            state.ordered_chunks(),
            self._config.overlap,
            state.no_overlap_indices(),
        )

    def _finalize_state(self, state: RoomTranscriptState) -> str:
        cached = state.cached_full_transcript
        if cached is not None:
            return cached

        if state.mark_finalizing():
            self._logger.info(
                "Finalizing room %s, waiting for %d in-flight chunks",
                state.room_id,
                state.in_flight_count,
            )

        wait_start = time.monotonic()
        if not state.wait_drained(self._config.finalize_timeout_seconds):
            self._logger.warning(
                "Room %s: %d chunks still in flight after %.1fs, assembling what has landed",
                state.room_id,
                state.in_flight_count,
                self._config.finalize_timeout_seconds,
            )

        with state.assembly_lock:
            cached = state.cached_full_transcript
            if cached is not None:
                return cached

            chunks = state.seal_chunks()
            transcript = assemble_transcript(
                chunks,
                self._config.overlap,
                state.no_overlap_indices(),
            )
            transcript = state.set_full_transcript(transcript)
            self._registry.purge_room_files(state.room_id)
            self._logger.info(
                "Room %s finalized: %d chunks, %d chars, drained in %.2fs",
                state.room_id,
                len(chunks),
                len(transcript),
                time.monotonic() - wait_start,
            )
            return transcript

    def _summarize_once(self, state: RoomTranscriptState, transcript: str) -> None:
        if self._summarizer is None:
            return
        with state.summary_lock:
            if state.summary_status in (SummaryStatus.COMPLETED, SummaryStatus.FAILED):
                return
            state.set_summary(None, SummaryStatus.PROCESSING)
            try:
                summary = self._summarizer.summarize_room(
                    state.room_id, state.room_name, transcript
                )
            except Exception as exc:
                self._logger.warning(
                    "Summary failed for room %s: %s", state.room_id, exc, exc_info=True
                )
                state.set_summary(None, SummaryStatus.FAILED)
                return
            state.set_summary(summary, SummaryStatus.COMPLETED)
            self._logger.info("Summary stored for room %s", state.room_id)

    def _result(self, state: RoomTranscriptState, transcript: str) -> FinalizeResult:
        snapshot = state.snapshot()
        return FinalizeResult(
            room_id=state.room_id,
            exists=True,
            transcript=transcript,
            chunk_count=snapshot.processed_count,
            drain_timed_out=snapshot.drain_timed_out,
            summary=state.summary,
            summary_status=snapshot.summary_status,
        )
