"""
Upload progress tracking.

The bar's total is the sum of the input file sizes, while the position
advances by the serialized size of each uploaded batch. Serialized JSON is
not byte-for-byte the input (CSV in particular grows when keyed by header),
so the fraction approximates read progress; the position is clamped to the
total so the bar never overshoots.
"""
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Callable, Optional, TextIO

from tqdm import tqdm

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressState:
    """Immutable snapshot of the counters."""
    total_bytes: int
    bytes_sent: int
    documents_sent: int
    batches_sent: int
    batches_skipped: int
    bytes_skipped: int
    elapsed_seconds: float
    documents_per_second: float
    eta_seconds: Optional[float]

    @property
    def fraction(self) -> Optional[float]:
        if self.total_bytes <= 0:
            return None
        return min(1.0, (self.bytes_sent + self.bytes_skipped) / self.total_bytes)


class ProgressTracker:
    """
    Aggregates per-batch counts into a live progress bar.

    Only the pipeline mutates the tracker, once per finished batch, so no
    locking is involved.
    """

    def __init__(
        self,
        total_bytes: int = 0,
        window: int = 10,
        enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
        file: Optional[TextIO] = None,
    ):
        """
        Initialize tracker.

        Args:
            total_bytes: Expected input size (0 when unknown, e.g. stdin)
            window: Number of recent batches in the ETA moving average
            enabled: Render the bar (counters are kept either way)
            clock: Monotonic time source
            file: Stream the bar is drawn on (stderr by default)
        """
        if window < 1:
            raise ValueError("window must be at least 1")
        self.total_bytes = max(0, total_bytes)
        self._clock = clock
        self._started_at = clock()
        self._last_mark = self._started_at

        self.bytes_sent = 0
        self.documents_sent = 0
        self.batches_sent = 0
        self.batches_skipped = 0
        self.bytes_skipped = 0
        self._position = 0

        self._durations: deque[float] = deque(maxlen=window)
        self._sizes: deque[int] = deque(maxlen=window)

        self._bar = tqdm(
            total=self.total_bytes or None,
            unit="B",
            unit_scale=True,
            unit_divisor=1024,
            desc="Uploading",
            disable=not enabled,
            file=file,
            dynamic_ncols=True,
        )

    def record(self, batch_bytes: int, batch_docs: int):
        """Count one successfully uploaded batch."""
        now = self._clock()
        self._durations.append(max(0.0, now - self._last_mark))
        self._sizes.append(batch_bytes)
        self._last_mark = now

        self.bytes_sent += batch_bytes
        self.documents_sent += batch_docs
        self.batches_sent += 1
        self._advance(batch_bytes)

        state = self.snapshot()
        postfix = {"docs": f"{state.documents_sent:,}", "docs/s": f"{state.documents_per_second:,.0f}"}
        if state.eta_seconds is not None:
            postfix["eta"] = _format_duration(state.eta_seconds)
        self._bar.set_postfix(postfix, refresh=False)

    def skip(self, batch_bytes: int):
        """Advance past a batch that is skipped on resume; it is not counted as sent."""
        self.batches_skipped += 1
        self.bytes_skipped += batch_bytes
        self._advance(batch_bytes)
        self._last_mark = self._clock()

    def _advance(self, nbytes: int):
        target = self._position + nbytes
        if self.total_bytes:
            target = min(target, self.total_bytes)
        delta = target - self._position
        if delta > 0:
            self._bar.update(delta)
        self._position = target

    def snapshot(self) -> ProgressState:
        elapsed = self._clock() - self._started_at
        docs_per_second = self.documents_sent / elapsed if elapsed > 0 else 0.0
        return ProgressState(
            total_bytes=self.total_bytes,
            bytes_sent=self.bytes_sent,
            documents_sent=self.documents_sent,
            batches_sent=self.batches_sent,
            batches_skipped=self.batches_skipped,
            bytes_skipped=self.bytes_skipped,
            elapsed_seconds=elapsed,
            documents_per_second=docs_per_second,
            eta_seconds=self._eta(),
        )

    def _eta(self) -> Optional[float]:
        """Remaining bytes divided by the moving-average byte rate."""
        if not self.total_bytes or not self._durations:
            return None
        window_time = sum(self._durations)
        if window_time <= 0:
            return None
        rate = sum(self._sizes) / window_time
        remaining = max(0, self.total_bytes - self._position)
        return remaining / rate if rate > 0 else None

    def close(self):
        self._bar.close()

    def __enter__(self) -> "ProgressTracker":
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


def _format_duration(seconds: float) -> str:
    seconds = int(round(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h{minutes:02d}m"
    if minutes:
        return f"{minutes}m{secs:02d}s"
    return f"{secs}s"
