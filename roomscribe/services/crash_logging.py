import faulthandler
import os
from typing import Optional, TextIO


_crash_file_handle: Optional[TextIO] = None


def enable_crash_logging(logs_dir: str) -> str:
    """Dump every thread's stack to ``crash.log`` on a hard crash (segfault in a native backend)."""
    global _crash_file_handle
    os.makedirs(logs_dir, exist_ok=True)
    crash_log_path = os.path.join(logs_dir, "crash.log")

    previous = _crash_file_handle
    _crash_file_handle = open(crash_log_path, "a", encoding="utf-8")
    faulthandler.enable(file=_crash_file_handle, all_threads=True)
    if previous is not None:
        previous.close()
    return crash_log_path
