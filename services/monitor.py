# services/monitor.py
"""Rolling log of production retrievals for quality-degradation detection"""
import logging
import threading
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from config import settings
from core.domain import RAGConfig, RetrievalLog, RetrievalMetrics

logger = logging.getLogger(settings.LOGGER_NAME)


class RetrievalMonitor:
    """
    Fixed-capacity ring buffer of RetrievalLog entries.

    Slots are preallocated; `_next` is the eviction pointer and always
    points at the oldest entry once the ring is full. One instance is
    created at application start and injected where needed.
    """

    def __init__(
        self,
        capacity: Optional[int] = None,
        low_quality_threshold: Optional[float] = None,
    ):
        self.capacity = settings.MONITOR_CAPACITY if capacity is None else capacity
        if self.capacity < 1:
            raise ValueError("Monitor capacity must be at least 1")
        self.low_quality_threshold = (
            settings.MONITOR_LOW_QUALITY_THRESHOLD
            if low_quality_threshold is None else low_quality_threshold
        )

        self._slots: List[Optional[RetrievalLog]] = [None] * self.capacity
        self._next = 0
        self._size = 0
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return self._size

    def log(
        self,
        query: str,
        scores: Sequence[float],
        config: RAGConfig,
        timestamp: Optional[datetime] = None,
    ) -> RetrievalLog:
        """Record one retrieval; `scores` are the returned result scores, best first."""
        entry = RetrievalLog(
            timestamp=timestamp or datetime.now(timezone.utc),
            query=query,
            top_score=float(scores[0]) if scores else 0.0,
            avg_score=float(sum(scores) / len(scores)) if scores else 0.0,
            result_count=len(scores),
            config=config,
        )

        with self._lock:
            self._slots[self._next] = entry
            self._next = (self._next + 1) % self.capacity
            self._size = min(self._size + 1, self.capacity)

        return entry

    def entries(self) -> List[RetrievalLog]:
        """Snapshot of stored entries, oldest first."""
        with self._lock:
            if self._size < self.capacity:
                ordered = self._slots[:self._size]
            else:
                ordered = self._slots[self._next:] + self._slots[:self._next]
        return [entry for entry in ordered if entry is not None]

    def recent_metrics(self, window_size: Optional[int] = None) -> RetrievalMetrics:
        """Aggregate the last `window_size` entries."""
        window_size = settings.MONITOR_WINDOW_SIZE if window_size is None else window_size
        if window_size < 1:
            raise ValueError("Monitor window size must be at least 1")
        recent = self.entries()[-window_size:]
        if not recent:
            return RetrievalMetrics()

        n = len(recent)
        low_quality = sum(1 for e in recent if e.top_score < self.low_quality_threshold)

        return RetrievalMetrics(
            avg_top_score=sum(e.top_score for e in recent) / n,
            avg_score=sum(e.avg_score for e in recent) / n,
            avg_result_count=sum(e.result_count for e in recent) / n,
            low_quality_rate=low_quality / n,
            sample_size=n,
        )

    def needs_retuning(self, threshold: Optional[float] = None,
                       window_size: Optional[int] = None) -> bool:
        """True when the low-quality fraction of recent retrievals exceeds `threshold`."""
        threshold = settings.MONITOR_RETUNE_THRESHOLD if threshold is None else threshold
        metrics = self.recent_metrics(window_size)
        if metrics.sample_size == 0:
            return False

        needs = metrics.low_quality_rate > threshold
        if needs:
            logger.warning(
                f"[MONITOR] Low-quality rate {metrics.low_quality_rate:.2f} "
                f"exceeds {threshold:.2f} over {metrics.sample_size} queries"
            )
        return needs

    def clear(self) -> None:
        with self._lock:
            self._slots = [None] * self.capacity
            self._next = 0
            self._size = 0
