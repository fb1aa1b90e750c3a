"""Per-cycle accumulation of data points.

MetricsBuilder keeps the start time of the cumulative window (moved only by
reset()) and the samples recorded since the last emit(). Sinks receive a
batch through add()/flush(), the same surface TimescaleWriter offers.
"""
from __future__ import annotations
import time
from typing import Callable, Dict, List, Optional

from .info_parser import MetricSample


class MetricsBuilder:
    def __init__(self, start_ts_ms: Optional[int] = None, resource_labels: Optional[Dict[str, str]] = None,
                 clock: Callable[[], float] = time.time):
        self.start_ts_ms = start_ts_ms if start_ts_ms is not None else int(clock() * 1000)
        self.resource_labels: Dict[str, str] = dict(resource_labels or {})
        self._pending: List[MetricSample] = []

    def reset(self, start_ts_ms: int) -> None:
        """Start a new cumulative window; later samples carry this start time."""
        self.start_ts_ms = start_ts_ms

    def _add(self, name: str, ts_ms: int, value, labels: Optional[Dict[str, str]]) -> None:
        merged = {**self.resource_labels, **(labels or {})}
        self._pending.append(MetricSample(name, value, ts_ms, merged, self.start_ts_ms))

    def record_int(self, name: str, ts_ms: int, value: int, labels: Optional[Dict[str, str]] = None) -> None:
        self._add(name, ts_ms, int(value), labels)

    def record_double(self, name: str, ts_ms: int, value: float, labels: Optional[Dict[str, str]] = None) -> None:
        self._add(name, ts_ms, float(value), labels)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def emit(self) -> List[MetricSample]:
        """Hand over everything recorded since the previous emit as one batch."""
        batch, self._pending = self._pending, []
        return batch


class MemorySink:
    """Keeps flushed batches in memory (tests, MCP last_scrape)."""

    def __init__(self, max_batches: int = 50):
        self.max_batches = max_batches
        self.batches: List[List[MetricSample]] = []
        self._current: List[MetricSample] = []
        self.total_samples = 0

    def add(self, sample: MetricSample) -> None:
        self._current.append(sample)

    def flush(self) -> None:
        if not self._current:
            return
        self.batches.append(self._current)
        self.total_samples += len(self._current)
        self._current = []
        # keep only the most recent batches
        if len(self.batches) > self.max_batches:
            self.batches.pop(0)

    @property
    def last_batch(self) -> List[MetricSample]:
        return self.batches[-1] if self.batches else []

    def stats(self) -> Dict[str, int]:
        return {
            'batches_kept': len(self.batches),
            'total_samples': self.total_samples,
            'last_batch_size': len(self.last_batch),
        }


__all__ = ["MetricsBuilder", "MemorySink"]
