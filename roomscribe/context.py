"""Application context: the single source of truth for runtime paths.

Services and routers receive this object instead of individual path strings.
"""

from __future__ import annotations

import os
import threading


class AppContext:
    """Holds all runtime directory paths for the application."""

    def __init__(
        self,
        *,
        cwd: str,
        data_dir: str,
        config_path: str,
    ) -> None:
        self._lock = threading.Lock()
        self._cwd = cwd
        self._data_dir = data_dir
        self._config_path = config_path

    @property
    def data_dir(self) -> str:
        with self._lock:
            return self._data_dir

    @property
    def config_path(self) -> str:
        return self._config_path

    # ── Derived data paths ─────────────────────────────────────────────

    @property
    def staging_dir(self) -> str:
        """Per-room chunk audio while it waits for transcription."""
        return os.path.join(self.data_dir, "staging")

    # ── Logs (stay in cwd, not in data_dir) ────────────────────────────

    @property
    def logs_dir(self) -> str:
        return os.path.join(self._cwd, "logs")

    def ensure_dirs(self) -> None:
        for d in (self.data_dir, self.staging_dir, self.logs_dir):
            os.makedirs(d, exist_ok=True)
