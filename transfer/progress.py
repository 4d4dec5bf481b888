"""Transfer progress arithmetic.

The engine produces ``ProgressSnapshot`` values; rendering them is the
caller's business (the CLI draws a rich Live panel).
"""
import re
import time
from dataclasses import dataclass
from typing import Optional

from adbx.utils.constants import ETA_CAP_SEC, PROGRESS_INTERVAL_TIERS, THROUGHPUT_WARMUP_SEC

_PERCENT_RE = re.compile(r"\[\s*(\d{1,3})%\]")
_BYTES_RE = re.compile(r"(\d+)\s*(?:/\s*\d+\s*)?bytes", re.IGNORECASE)
_RATIO_RE = re.compile(r"\b(\d+)\s*/\s*(\d+)\b")


def poll_interval(total_bytes: int) -> float:
    for threshold, interval in PROGRESS_INTERVAL_TIERS:
        if total_bytes >= threshold:
            return interval
    return PROGRESS_INTERVAL_TIERS[-1][1]


def compute_throughput(done_bytes: int, elapsed: float) -> float:
    if elapsed < THROUGHPUT_WARMUP_SEC or done_bytes <= 0:
        return 0.0
    return done_bytes / elapsed


def compute_eta(remaining_bytes: int, throughput: float) -> Optional[float]:
    if throughput <= 0:
        return None
    eta = max(0, remaining_bytes) / throughput
    if eta > ETA_CAP_SEC:
        return None
    return eta


def format_eta(eta: Optional[float]) -> str:
    if eta is None:
        return "--:--:--"
    seconds = int(round(eta))
    return f"{seconds // 3600:02d}:{seconds % 3600 // 60:02d}:{seconds % 60:02d}"


def parse_progress_chatter(text: str, item_size: int = 0) -> Optional[int]:
    """Bytes done according to the transfer tool's own stderr output.

    Recognizes ``[ 42%]`` markers (scaled by ``item_size``), ``N/M`` ratios
    and ``N bytes`` tokens; the last one printed wins.
    """
    if not text:
        return None
    tail = text[-4096:]
    best_pos, best = -1, None

    if item_size > 0:
        for m in _PERCENT_RE.finditer(tail):
            if m.start() > best_pos:
                pct = min(100, int(m.group(1)))
                best_pos, best = m.start(), item_size * pct // 100
    for m in _RATIO_RE.finditer(tail):
        done, total = int(m.group(1)), int(m.group(2))
        if total and done <= total and m.start() > best_pos:
            best_pos, best = m.start(), done if not item_size else min(done, item_size)
    for m in _BYTES_RE.finditer(tail):
        if m.start() > best_pos:
            best_pos, best = m.start(), int(m.group(1))
    return best


@dataclass(frozen=True)
class ProgressSnapshot:
    activity: str
    item_name: str
    item_index: int
    item_count: int
    done_bytes: int
    total_bytes: int
    throughput: float
    eta: Optional[float]
    indeterminate: bool = False

    @property
    def percent(self) -> Optional[float]:
        if self.indeterminate or self.total_bytes <= 0:
            return None
        return min(100.0, self.done_bytes * 100.0 / self.total_bytes)

    @property
    def eta_text(self) -> str:
        return format_eta(self.eta)


class ProgressTracker:
    """Batch-wide byte counter; one instance per pull/push call."""

    def __init__(self, activity: str, total_bytes: int, item_count: int, clock=time.monotonic):
        self.activity = activity
        self.total_bytes = max(0, total_bytes)
        self.item_count = item_count
        self._clock = clock
        self.started_at = clock()
        self.completed_bytes = 0
        self.current_bytes = 0
        self.item_index = 0
        self.item_name = ""
        self.indeterminate = False

    @property
    def interval(self) -> float:
        return poll_interval(self.total_bytes)

    def elapsed(self) -> float:
        return self._clock() - self.started_at

    def start_item(self, index: int, name: str) -> None:
        self.item_index = index
        self.item_name = name
        self.current_bytes = 0
        self.indeterminate = False

    def update(self, item_bytes: Optional[int], item_size: int) -> None:
        if item_bytes is None:
            self.indeterminate = True
            return
        self.indeterminate = False
        self.current_bytes = max(0, min(item_bytes, item_size) if item_size else item_bytes)

    def finish_item(self, transferred: int) -> None:
        self.completed_bytes += max(0, transferred)
        self.current_bytes = 0

    @property
    def done_bytes(self) -> int:
        return self.completed_bytes + self.current_bytes

    def snapshot(self) -> ProgressSnapshot:
        done = self.done_bytes
        throughput = compute_throughput(done, self.elapsed())
        return ProgressSnapshot(
            activity=self.activity,
            item_name=self.item_name,
            item_index=self.item_index,
            item_count=self.item_count,
            done_bytes=done,
            total_bytes=self.total_bytes,
            throughput=throughput,
            eta=compute_eta(self.total_bytes - done, throughput),
            indeterminate=self.indeterminate,
        )
