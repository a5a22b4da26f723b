"""Keeping the lidar log directories within their size budget.

Real-time logs live in ``type_0`` and exception logs in ``type_1`` below
the log root.  When a directory grows past its budget the oldest visible
files are removed until it fits again.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .file_manager import collect_file_names, dir_total_size, directory_exists

log = logging.getLogger(__name__)

PathLike = Union[str, "os.PathLike[str]"]

MIB = 1024 * 1024
MAX_EXCEPTION_LOG_CACHE_MB = 200
EXCEPTION_LOG_CACHE_RATIO = 1
REALTIME_LOG_CACHE_RATIO = 3
MAX_CACHE_SIZE_MB = 1000000000
DEFAULT_CLEANUP_INTERVAL = 600.0


def split_cache_size(cache_size_mb: int) -> Tuple[int, int]:
    """Split a log budget in MiB into ``(realtime_bytes, exception_bytes)``.

    Exception logs get a quarter of the budget, but never more than 200 MiB.
    Raises ``ValueError`` for a budget of zero or above 1000000000 MiB, for
    which logging is not enabled.
    """
    if cache_size_mb <= 0 or cache_size_mb > MAX_CACHE_SIZE_MB:
        raise ValueError(f"log cache size out of range: {cache_size_mb} MB")
    total_ratio = EXCEPTION_LOG_CACHE_RATIO + REALTIME_LOG_CACHE_RATIO
    if cache_size_mb > MAX_EXCEPTION_LOG_CACHE_MB * total_ratio // EXCEPTION_LOG_CACHE_RATIO:
        exception = MAX_EXCEPTION_LOG_CACHE_MB * MIB
        realtime = (cache_size_mb - MAX_EXCEPTION_LOG_CACHE_MB) * MIB
    else:
        realtime = (cache_size_mb * REALTIME_LOG_CACHE_RATIO // total_ratio) * MIB
        exception = (cache_size_mb * EXCEPTION_LOG_CACHE_RATIO // total_ratio) * MIB
    return realtime, exception


def prune_log_dir(path: PathLike, max_size: int) -> List[Path]:
    """Remove the oldest log files in ``path`` until it is at most ``max_size`` bytes.

    Returns the removed paths; a missing directory is left alone.
    """
    if not directory_exists(path) or dir_total_size(path) <= max_size:
        return []
    try:
        names = collect_file_names(path)
    except OSError as exc:
        log.error("Can not get filenames in this directory: %s (%s)", path, exc)
        names = []
    removed: List[Path] = []
    for _, name in names:
        if dir_total_size(path) <= max_size:
            break
        target = Path(path) / name
        try:
            os.remove(target)
        except OSError as exc:
            log.warning("Remove log file %s failed: %s", target, exc)
            continue
        removed.append(target)
    return removed


class LogCleaner:
    """Prunes the real-time and exception log directories, on demand or periodically."""

    def __init__(self, root_path: PathLike, max_realtime_size: int, max_exception_size: int) -> None:
        self.root_path = Path(root_path)
        self.realtime_path = self.root_path / "type_0"
        self.exception_path = self.root_path / "type_1"
        self.max_realtime_size = max_realtime_size
        self.max_exception_size = max_exception_size
        self._wake = threading.Event()
        self._stopping = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def __enter__(self) -> "LogCleaner":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.stop()

    def cleanup_once(self) -> List[Path]:
        """Prune both directories now; return the removed paths."""
        removed = prune_log_dir(self.realtime_path, self.max_realtime_size)
        removed.extend(prune_log_dir(self.exception_path, self.max_exception_size))
        return removed

    def start(self, interval: float = DEFAULT_CLEANUP_INTERVAL) -> None:
        """Clean up on a background thread every ``interval`` seconds or when triggered."""
        if self._thread is not None:
            return
        self._stopping.clear()
        self._thread = threading.Thread(target=self._run, args=(interval,), daemon=True)
        self._thread.start()

    def _run(self, interval: float) -> None:
        while True:
            self._wake.wait(interval)
            self._wake.clear()
            self.cleanup_once()
            if self._stopping.is_set():
                return

    def trigger(self) -> None:
        """Wake the background thread for an early cleanup."""
        self._wake.set()

    def stop(self) -> None:
        """Run a last cleanup and stop the background thread."""
        if self._thread is None:
            return
        self._stopping.set()
        self._wake.set()
        self._thread.join()
        self._thread = None