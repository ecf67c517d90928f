"""
Registry of live rooms and their staging directories.

Rooms are created lazily on the first chunk (or an explicit start signal) and
removed on ``clear`` or by the janitor once a finalized room has outlived its
retention window. Nothing survives a process restart.
"""

from __future__ import annotations

import logging
import os
import re
import shutil
import threading
import time
from typing import Optional

from roomscribe.services.room_store import RoomTranscriptState

_logger = logging.getLogger(__name__)

_ROOM_ID_RE = re.compile(r"^[A-Za-z0-9_.:-]{1,128}$")


def validate_room_id(room_id: str) -> str:
    """Room ids double as directory names, so only a safe charset is allowed."""
    if not isinstance(room_id, str) or not _ROOM_ID_RE.match(room_id) or room_id in (".", ".."):
        raise ValueError(f"Invalid room id: {room_id!r}")
    return room_id


class RoomRegistry:
    """Owns every ``RoomTranscriptState`` in the process."""

    def __init__(self, staging_dir: str) -> None:
        self._staging_dir = staging_dir
        self._lock = threading.Lock()
        self._rooms: dict[str, RoomTranscriptState] = {}
        os.makedirs(self._staging_dir, exist_ok=True)

    @property
    def staging_dir(self) -> str:
        return self._staging_dir

    def get_or_create(self, room_id: str, room_name: Optional[str] = None) -> RoomTranscriptState:
        validate_room_id(room_id)
        with self._lock:
            state = self._rooms.get(room_id)
            if state is None:
                state = RoomTranscriptState(room_id, room_name=room_name)
                self._rooms[room_id] = state
                _logger.info("Room created: %s", room_id)
            elif room_name and not state.room_name:
                state.room_name = room_name
            return state

    def get(self, room_id: str) -> Optional[RoomTranscriptState]:
        with self._lock:
            return self._rooms.get(room_id)

    def remove(
        self, room_id: str, expected: Optional[RoomTranscriptState] = None
    ) -> Optional[RoomTranscriptState]:
        """Forget a room and purge its staged files. Unknown rooms are a no-op.

        With ``expected`` set, the room is only removed if it is still that
        exact state object (it may have been cleared and recreated meanwhile).
        """
        with self._lock:
            current = self._rooms.get(room_id)
            if current is None or (expected is not None and current is not expected):
                return None
            state = self._rooms.pop(room_id)
        _logger.info("Room removed: %s", room_id)
        self.purge_room_files(room_id)
        return state

    def list_room_ids(self) -> list[str]:
        with self._lock:
            return sorted(self._rooms.keys())

    def states(self) -> list[RoomTranscriptState]:
        with self._lock:
            return list(self._rooms.values())

    def room_dir(self, room_id: str) -> str:
        validate_room_id(room_id)
        return os.path.join(self._staging_dir, room_id)

    def purge_room_files(self, room_id: str) -> None:
        try:
            room_dir = self.room_dir(room_id)
        except ValueError:
            return
        if not os.path.isdir(room_dir):
            return
        try:
            shutil.rmtree(room_dir)
        except OSError as exc:
            _logger.warning("Failed to clean up staging files for room %s: %s", room_id, exc)


class RoomJanitor:
    """Background sweep that evicts rooms nobody will ask about again.

    - Finalized rooms are kept for ``finalized_retention_seconds`` so repeated
      finalize/status/summary reads still see the cached result, then evicted.
    - Rooms that never got finalized and saw no activity for
      ``abandoned_room_seconds`` are cleared.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        *,
        finalized_retention_seconds: float = 3600.0,
        abandoned_room_seconds: float = 7200.0,
        interval_seconds: float = 60.0,
    ) -> None:
        self._registry = registry
        self._finalized_retention = finalized_retention_seconds
        self._abandoned_after = abandoned_room_seconds
        self._interval = interval_seconds

        self._running = False
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()

    def start(self) -> None:
        if self._running:
            _logger.warning("RoomJanitor already running")
            return

        self._running = True
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._sweep_loop,
            name="RoomJanitor",
            daemon=True,
        )
        self._thread.start()
        _logger.info("RoomJanitor started")

    def stop(self) -> None:
        if not self._running:
            return

        self._running = False
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5.0)
        _logger.info("RoomJanitor stopped")

    def _sweep_loop(self) -> None:
        while not self._stop_event.wait(self._interval):
            try:
                self.sweep()
            except Exception as exc:
                _logger.exception("RoomJanitor sweep error: %s", exc)

    def sweep(self, now: Optional[float] = None) -> list[str]:
        """Evict expired rooms once. Returns the evicted room ids."""
        now = time.time() if now is None else now
        evicted: list[str] = []
        for state in self._registry.states():
            finalized_at = state.finalized_at
            if finalized_at is not None:
                expired = now - finalized_at >= self._finalized_retention
            else:
                expired = (
                    not state.finalized
                    and state.in_flight_count == 0
                    and now - state.last_activity_at >= self._abandoned_after
                )
            if expired and self._registry.remove(state.room_id, expected=state) is not None:
                evicted.append(state.room_id)

        if evicted:
            _logger.info("RoomJanitor evicted %d rooms: %s", len(evicted), evicted)
        return evicted
