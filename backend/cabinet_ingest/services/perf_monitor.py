"""Performance monitoring utilities for the cabinet ingestion pipeline."""
import time
import logging
import threading
import functools
from typing import Any, Callable, Dict

logger = logging.getLogger("cabinet-ingest.perf")


def timed(func: Callable) -> Callable:
    """
    Decorator that measures and logs execution time for synchronous functions.

    Usage::

        @timed
        def parse_dxf_content(content):
            ...
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        try:
            return func(*args, **kwargs)
        finally:
            duration_ms = round((time.perf_counter() - start) * 1000, 2)
            logger.debug(
                "function timed",
                extra={
                    "timed_function": func.__qualname__,
                    "duration_ms": duration_ms,
                },
            )
    return wrapper


class BatchStatsTracker:
    """
    Thread-safe in-memory tracker for ingestion metrics.

    Tracks:
    - Batches, files seen and files processed
    - Cabinets extracted, broken down by winning extraction tier
    - Error count and slowest file
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._batches: int = 0
        self._files_seen: int = 0
        self._files_processed: int = 0
        self._errors: int = 0
        self._cabinets_by_tier: Dict[str, int] = {}
        self._file_durations_ms: list = []
        self._slowest_file: str | None = None
        self._slowest_file_ms: float = 0.0

    # ------------------------------------------------------------------
    # Public write API
    # ------------------------------------------------------------------

    def record_file(self, filename: str, duration_ms: float, processed: bool,
                    tier: str | None = None, cabinet_count: int = 0) -> None:
        """Call once per archive member, whatever its outcome."""
        with self._lock:
            self._files_seen += 1
            if processed:
                self._files_processed += 1
            if tier and cabinet_count:
                self._cabinets_by_tier[tier] = self._cabinets_by_tier.get(tier, 0) + cabinet_count
            self._file_durations_ms.append(duration_ms)
            if duration_ms > self._slowest_file_ms:
                self._slowest_file_ms = duration_ms
                self._slowest_file = filename

    def record_error(self) -> None:
        with self._lock:
            self._errors += 1

    def record_batch_complete(self) -> None:
        with self._lock:
            self._batches += 1

    # ------------------------------------------------------------------
    # Public read API
    # ------------------------------------------------------------------

    def get_metrics(self) -> Dict[str, Any]:
        """
        Return a snapshot of all collected metrics.

        Returns
        -------
        dict with keys:
            batches, files_seen, files_processed, error_count : int
            cabinets_extracted    : int
            cabinets_by_tier      : dict  {tier_name: count}
            avg_file_duration_ms  : float (0 if no files)
            slowest_file          : str | None
            slowest_file_ms       : float
        """
        with self._lock:
            durations = self._file_durations_ms
            avg = round(sum(durations) / len(durations), 2) if durations else 0.0
            return {
                "batches": self._batches,
                "files_seen": self._files_seen,
                "files_processed": self._files_processed,
                "error_count": self._errors,
                "cabinets_extracted": sum(self._cabinets_by_tier.values()),
                "cabinets_by_tier": dict(self._cabinets_by_tier),
                "avg_file_duration_ms": avg,
                "slowest_file": self._slowest_file,
                "slowest_file_ms": round(self._slowest_file_ms, 2),
            }

    def reset(self) -> None:
        """Reset all counters (useful in tests)."""
        with self._lock:
            self._batches = 0
            self._files_seen = 0
            self._files_processed = 0
            self._errors = 0
            self._cabinets_by_tier.clear()
            self._file_durations_ms.clear()
            self._slowest_file = None
            self._slowest_file_ms = 0.0


# Shared by every BatchProcessor constructed without its own tracker
tracker = BatchStatsTracker()
