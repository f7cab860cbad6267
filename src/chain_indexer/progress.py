"""
Progress and ETA for long scans.

The rate is always blocks processed divided by the time since the scan
started, so the ETA does not drift with how often progress is reported.
"""

import shutil
import sys
import time
from typing import Callable, Optional

from chain_indexer.models import ScanProgress


def fmt_hms(seconds: Optional[float]) -> str:
    if seconds is None:
        return "--"
    s = int(max(0, seconds))
    h, rem = divmod(s, 3600)
    m, s = divmod(rem, 60)
    if h:
        return f"{h:d}h{m:02d}m{s:02d}s"
    if m:
        return f"{m:d}m{s:02d}s"
    return f"{s:d}s"


class ProgressTracker:
    """Rate-limited progress snapshots for a run over `total` blocks."""

    def __init__(
        self,
        total: int,
        min_interval: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.total = max(0, total)
        self.min_interval = min_interval
        self.clock = clock
        self.start_time = clock()
        self._last_report: Optional[float] = None

    def snapshot(self, processed: int, new_records: int) -> ScanProgress:
        now = self.clock()
        elapsed = max(0.0, now - self.start_time)
        processed = max(0, min(processed, self.total))
        rate = processed / elapsed if elapsed > 0 else 0.0
        eta = (self.total - processed) / rate if rate > 0 else None
        return ScanProgress(
            processed=processed,
            total=self.total,
            new_records=new_records,
            elapsed=elapsed,
            rate=rate,
            eta=eta,
        )

    def update(self, processed: int, new_records: int, force: bool = False) -> Optional[ScanProgress]:
        """Return a snapshot if one is due (or forced), else None."""
        now = self.clock()
        if not force and self._last_report is not None and now - self._last_report < self.min_interval:
            return None
        if not force and self._last_report is None and now - self.start_time < self.min_interval:
            return None
        self._last_report = now
        return self.snapshot(processed, new_records)


def describe(progress: ScanProgress) -> str:
    return (
        f"{progress.processed}/{progress.total} blocks ({progress.percent:.1f}%), "
        f"{progress.new_records} new, {progress.rate:.2f} blk/s, ETA {fmt_hms(progress.eta)}"
    )


# ---------- Console rendering (single line, with rate & ETA) ----------
def render_progress(progress: ScanProgress, prefix: str = "scan") -> None:
    """Overwrite the current console line with a progress bar."""
    try:
        width = shutil.get_terminal_size((100, 20)).columns
    except (OSError, ValueError):
        width = 100

    total = progress.total
    bar_width = max(10, min(40, width - 70))
    filled = int(round(bar_width * (progress.processed / total))) if total > 0 else bar_width
    bar = "█" * filled + "·" * (bar_width - filled)

    line = (
        f"{prefix:>6} |[{bar}] {progress.percent:6.2f}% "
        f"{progress.processed:>7d}/{total:<7d} | +{progress.new_records} | "
        f"{progress.rate:6.2f}/s | ETA {fmt_hms(progress.eta)}"
    )
    if len(line) >= width:
        line = line[: width - 1]

    sys.stdout.write("\r" + line)
    sys.stdout.flush()


def finish_progress() -> None:
    sys.stdout.write("\n")
    sys.stdout.flush()
