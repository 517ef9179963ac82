"""Buffered collection of metric samples with a caller-owned lifecycle."""

from datetime import date, datetime, timedelta
from threading import Event, Lock, Thread
from typing import Callable, Dict, List, Optional, Tuple

import pandas as pd
from pydantic import BaseModel

from ..core.config import get_settings
from ..models.series_models import TimeSeriesPoint, to_number


class MetricSample(BaseModel):
    name: str
    value: float
    timestamp: datetime


Sink = Callable[[List[MetricSample]], None]


class MetricCollector:
    """
    Collects metric samples and hands them to a sink in batches.

    The caller owns the lifecycle: `start()` begins the optional periodic
    flush thread, `flush()` pushes the buffer to the sink, `stop()` joins the
    thread and performs a final flush. Usable as a context manager.

    A batch the sink rejects (raises) goes back to the front of the buffer.
    Delivered samples are folded into per-day (sum, count) aggregates, and
    only the most recent `history_days` days are kept for each metric.
    """

    def __init__(
        self,
        sink: Optional[Sink] = None,
        buffer_size: Optional[int] = None,
        flush_interval: Optional[float] = None,
        history_days: Optional[int] = None,
        verbose: Optional[bool] = None
    ):
        """
        Initialize collector.

        Args:
            sink: Receives each flushed batch (batches are only kept locally when None)
            buffer_size: Buffered samples that trigger an automatic flush
            flush_interval: Seconds between background flushes; 0 disables the thread
            history_days: Days of daily aggregates retained per metric
            verbose: Print flush activity (defaults to settings)
        """
        settings = get_settings()
        self.sink = sink
        self.buffer_size = buffer_size or settings.buffer_size
        self.flush_interval = (
            settings.flush_interval_seconds if flush_interval is None else flush_interval
        )
        self.history_days = history_days or settings.history_days
        self.verbose = settings.verbose if verbose is None else verbose

        self._buffer: List[MetricSample] = []
        self._daily: Dict[str, Dict[date, Tuple[float, int]]] = {}
        self._lock = Lock()
        self._stop_event = Event()
        self._thread: Optional[Thread] = None
        self._closed = False

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._buffer)

    @property
    def retained(self) -> int:
        """Number of (metric, day) aggregates currently held."""
        with self._lock:
            return sum(len(days) for days in self._daily.values())

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> "MetricCollector":
        """Start the periodic flush thread (no-op when already running or disabled)."""
        if self._closed:
            raise RuntimeError("MetricCollector has been stopped")
        if self.flush_interval > 0 and not self.is_running:
            self._stop_event.clear()
            self._thread = Thread(target=self._flush_loop, name="metric-collector", daemon=True)
            self._thread.start()
            if self.verbose:
                print(f"[COLLECTOR] Started (flush every {self.flush_interval}s)")
        return self

    def _flush_loop(self) -> None:
        while not self._stop_event.wait(self.flush_interval):
            self.flush()

    def record(self, name: str, value: float, when: Optional[datetime] = None) -> None:
        """
        Buffer one sample; flushes automatically once the buffer is full.

        Raises:
            ValueError: value is not numeric
            RuntimeError: the collector was stopped
        """
        if self._closed:
            raise RuntimeError("MetricCollector has been stopped")

        number = to_number(value)
        if number is None:
            raise ValueError(f"Metric {name!r} value is not numeric: {value!r}")

        sample = MetricSample(name=name, value=number, timestamp=when or datetime.now())
        with self._lock:
            self._buffer.append(sample)
            full = len(self._buffer) >= self.buffer_size

        if full:
            self.flush()

    def flush(self) -> int:
        """
        Send buffered samples to the sink.

        Returns:
            Number of samples delivered (0 when empty or the sink failed)
        """
        with self._lock:
            batch, self._buffer = self._buffer, []

        if not batch:
            return 0

        if self.sink is not None:
            try:
                self.sink(batch)
            except Exception as e:
                with self._lock:
                    self._buffer = batch + self._buffer
                print(f"[COLLECTOR] [WARN] Sink failed, re-queued {len(batch)} samples: {e}")
                return 0

        with self._lock:
            self._aggregate(batch)

        if self.verbose:
            print(f"[COLLECTOR] Flushed {len(batch)} samples")
        return len(batch)

    def stop(self) -> None:
        """Stop the flush thread and flush what is left."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        self.flush()
        self._closed = True
        if self.verbose:
            print("[COLLECTOR] Stopped")

    def __enter__(self) -> "MetricCollector":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()

    def _aggregate(self, batch: List[MetricSample]) -> None:
        # Caller holds the lock
        touched = set()
        for sample in batch:
            days = self._daily.setdefault(sample.name, {})
            day = sample.timestamp.date()
            total, count = days.get(day, (0.0, 0))
            days[day] = (total + sample.value, count + 1)
            touched.add(sample.name)

        for name in touched:
            days = self._daily[name]
            cutoff = max(days) - timedelta(days=self.history_days - 1)
            for day in [d for d in days if d < cutoff]:
                del days[day]

    def series(self, name: str) -> List[TimeSeriesPoint]:
        """Daily mean of the retained aggregates and pending samples under `name`."""
        with self._lock:
            rows = [
                (day, total, count)
                for day, (total, count) in self._daily.get(name, {}).items()
            ]
            rows += [(s.timestamp.date(), s.value, 1) for s in self._buffer if s.name == name]

        if not rows:
            return []

        frame = pd.DataFrame(rows, columns=['day', 'total', 'count'])
        daily = frame.groupby('day', sort=True)[['total', 'count']].sum()

        return [
            TimeSeriesPoint(date=day, value=float(row['total'] / row['count']))
            for day, row in daily.iterrows()
        ]
