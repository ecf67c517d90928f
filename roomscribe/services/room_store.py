"""
Per-room transcript state and the room-keyed store over it.

Each room carries its own small lock. Dispatch workers only take it for the
dict assignment that records a finished chunk, so transcription itself never
runs under a room-wide lock. The same lock backs a condition variable the
finalizer waits on while in-flight chunks drain.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from roomscribe.services.room_registry import RoomRegistry
    from roomscribe.services.summarization import RoomSummary

_logger = logging.getLogger("roomscribe.store")


class RoomPhase(Enum):
    CREATED = "created"
    ACCEPTING = "accepting"
    FINALIZING = "finalizing"
    FINALIZED = "finalized"


class SummaryStatus(Enum):
    NONE = "none"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class StatusSnapshot:
    """Point-in-time view of one room."""
    room_id: str
    exists: bool
    processed_count: int = 0
    in_flight_count: int = 0
    finalized: bool = False
    highest_seen_index: int = -1
    phase: Optional[RoomPhase] = None
    drain_timed_out: bool = False
    summary_status: SummaryStatus = SummaryStatus.NONE

    def to_dict(self) -> dict:
        return {
            "roomSid": self.room_id,
            "exists": self.exists,
            "processedChunks": self.processed_count,
            "activeProcessing": self.in_flight_count,
            "isFinalized": self.finalized,
            "lastChunkIndex": self.highest_seen_index,
            "phase": self.phase.value if self.phase else None,
            "drainTimedOut": self.drain_timed_out,
            "summaryStatus": self.summary_status.value,
        }


class RoomTranscriptState:
    """Mutable state of one live room.

    Lifecycle: CREATED -> ACCEPTING -> FINALIZING -> FINALIZED. ``finalized``
    flips once, when finalization starts; from then on submissions are
    declined. Results of chunks already in flight still land until the
    finalizer seals the chunk map for assembly.
    """

    def __init__(self, room_id: str, room_name: Optional[str] = None) -> None:
        self.room_id = room_id
        self.room_name = room_name
        self.created_at = time.time()
        self._lock = threading.Lock()
        self._drained = threading.Condition(self._lock)
        # Held by the one finalize call that assembles; others wait on it.
        self.assembly_lock = threading.Lock()
        self.summary_lock = threading.Lock()

        self._chunks: dict[int, str] = {}
        self._no_overlap: set[int] = set()
        self._highest_seen_index = -1
        self._in_flight = 0
        self._finalized = False
        self._sealed = False
        self._phase = RoomPhase.CREATED
        self._cached_full_transcript: Optional[str] = None
        self._drain_timed_out = False
        self._last_activity_at = self.created_at
        self._finalized_at: Optional[float] = None
        self._summary: Optional["RoomSummary"] = None
        self._summary_status = SummaryStatus.NONE

    # ── Ingestion ──────────────────────────────────────────────────────

    def try_begin_chunk(self, chunk_index: int, has_overlap: bool = True) -> bool:
        """Register a submitted chunk as in flight, unless the room is finalized."""
        with self._lock:
            if self._finalized:
                return False
            self._in_flight += 1
            self._phase = RoomPhase.ACCEPTING
            self._last_activity_at = time.time()
            if has_overlap:
                self._no_overlap.discard(chunk_index)
            else:
                self._no_overlap.add(chunk_index)
            return True

    def end_chunk(self) -> None:
        with self._lock:
            self._in_flight = max(0, self._in_flight - 1)
            if self._in_flight == 0:
                self._drained.notify_all()

    def put_chunk(self, chunk_index: int, text: str) -> bool:
        """Record the transcript of one chunk; a retried index overwrites.

        Returns False, and logs the discard, once the chunk map is sealed.
        """
        with self._lock:
            if self._sealed:
                _logger.warning(
                    "Discarding late chunk %s for room %s: transcript already assembled",
                    chunk_index,
                    self.room_id,
                )
                return False
            self._chunks[chunk_index] = text
            if chunk_index > self._highest_seen_index:
                self._highest_seen_index = chunk_index
            self._last_activity_at = time.time()
            return True

    def get_chunk(self, chunk_index: int) -> Optional[str]:
        with self._lock:
            return self._chunks.get(chunk_index)

    def ordered_chunks(self) -> list[tuple[int, str]]:
        with self._lock:
            items = list(self._chunks.items())
        return sorted(items)

    def no_overlap_indices(self) -> set[int]:
        with self._lock:
            return set(self._no_overlap)

    # ── Finalization ───────────────────────────────────────────────────

    def mark_finalizing(self) -> bool:
        """Stop accepting submissions. Returns False if already finalized."""
        with self._lock:
            if self._finalized:
                return False
            self._finalized = True
            self._phase = RoomPhase.FINALIZING
            return True

    def wait_drained(self, timeout: float) -> bool:
        """Block until no chunk is in flight or ``timeout`` elapses."""
        with self._lock:
            drained = self._drained.wait_for(lambda: self._in_flight == 0, timeout=timeout)
            if not drained:
                self._drain_timed_out = True
            return drained

    def seal_chunks(self) -> list[tuple[int, str]]:
        """Freeze the chunk map and return its ordered contents."""
        with self._lock:
            self._sealed = True
            items = list(self._chunks.items())
        return sorted(items)

    def set_full_transcript(self, transcript: str) -> str:
        """Publish the assembled transcript; the first value wins."""
        with self._lock:
            if self._cached_full_transcript is None:
                self._cached_full_transcript = transcript
                self._phase = RoomPhase.FINALIZED
                self._finalized_at = time.time()
            return self._cached_full_transcript

    @property
    def cached_full_transcript(self) -> Optional[str]:
        with self._lock:
            return self._cached_full_transcript

    @property
    def finalized(self) -> bool:
        with self._lock:
            return self._finalized

    @property
    def sealed(self) -> bool:
        with self._lock:
            return self._sealed

    @property
    def in_flight_count(self) -> int:
        with self._lock:
            return self._in_flight

    @property
    def finalized_at(self) -> Optional[float]:
        with self._lock:
            return self._finalized_at

    @property
    def last_activity_at(self) -> float:
        with self._lock:
            return self._last_activity_at

    # ── Summary ────────────────────────────────────────────────────────

    @property
    def summary(self) -> Optional["RoomSummary"]:
        with self._lock:
            return self._summary

    @property
    def summary_status(self) -> SummaryStatus:
        with self._lock:
            return self._summary_status

    def set_summary(self, summary: Optional["RoomSummary"], status: SummaryStatus) -> None:
        with self._lock:
            self._summary = summary
            self._summary_status = status

    def snapshot(self) -> StatusSnapshot:
        with self._lock:
            return StatusSnapshot(
                room_id=self.room_id,
                exists=True,
                processed_count=len(self._chunks),
                in_flight_count=self._in_flight,
                finalized=self._finalized,
                highest_seen_index=self._highest_seen_index,
                phase=self._phase,
                drain_timed_out=self._drain_timed_out,
                summary_status=self._summary_status,
            )


class RoomTranscriptStore:
    """Room-id keyed access to chunk transcripts held by the registry."""

    def __init__(self, registry: "RoomRegistry") -> None:
        self._registry = registry

    def put(self, room_id: str, chunk_index: int, text: str) -> bool:
        """Record a chunk by room id, for callers that do not hold the room state.

        Dispatch workers already hold the state and call ``put_chunk`` on it.
        """
        state = self._registry.get(room_id)
        if state is None:
            _logger.warning("Discarding chunk %s for unknown room %s", chunk_index, room_id)
            return False
        return state.put_chunk(chunk_index, text)

    def get_ordered_chunks(self, room_id: str) -> list[tuple[int, str]]:
        state = self._registry.get(room_id)
        if state is None:
            return []
        return state.ordered_chunks()

    def status(self, room_id: str) -> StatusSnapshot:
        state = self._registry.get(room_id)
        if state is None:
            return StatusSnapshot(room_id=room_id, exists=False)
        return state.snapshot()
