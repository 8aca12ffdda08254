# timeseries.py
"""
Interval time series: re-bucket irregular prints into fixed minute intervals.

Every print carries (date int, minute of day, ...). The series keeps one row
per closed bucket in a CircularRowBuffer (col 0 = date, col 1 = minute) and,
when several intervals pass between two prints, forward-fills the skipped
buckets so the ring always walks back in exact `interval` steps.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

from core import (
    Config,
    CircularRowBuffer,
    MINUTES_IN_DAY,
    ORIGIN_DATE,
    add_days,
    bucket_datetime,
    minutes_between,
    shift_minutes,
)

log = logging.getLogger(__name__)

DATE_COL = 0
MINUTE_COL = 1

Bucket = Tuple[int, int]


class IntervalTimeSeries:
    def __init__(self, interval: int, capacity: int = 256, min_fields: int = 2,
                 origin: Bucket = ORIGIN_DATE):
        if interval < 1:
            raise ValueError(f"interval must be >= 1 minute, got {interval}")
        self.interval = interval
        self.origin = origin
        self.min_fields = max(2, min_fields)
        self.buffer = CircularRowBuffer(capacity, 2)
        self.last_raw: Bucket = (0, 0)
        self.rows_changed = 0
        self._filled = 0          # rows holding real buckets

    @property
    def capacity(self) -> int:
        return self.buffer.capacity

    def __len__(self) -> int:
        return self._filled

    def _current(self) -> Bucket:
        return self.buffer.get_row(self.buffer.index)

    def ingest(self, sample: Sequence[float]) -> int:
        """Feed one print; returns (and stores in rows_changed) the rows written.

        0 means nothing happened: too few fields, a repeated print, a print
        inside the still-open bucket, or one that went back in time.
        """
        self.rows_changed = 0
        if len(sample) < self.min_fields:
            return 0

        d = int(sample[0])
        t = int(sample[1])
        cur = self._current()
        if (d, t) == self.last_raw or (d, t) == cur:
            return 0

        # first real print: align to the interval grid counted from origin
        if cur[DATE_COL] == 0:
            elapsed = minutes_between(d, t, *self.origin)
            elapsed = elapsed // self.interval * self.interval
            self.buffer.set_row(self.buffer.index, shift_minutes(*self.origin, elapsed))
            self._filled = 1
            self.last_raw = (d, t)
            self.rows_changed = 1
            return 1

        timediff = minutes_between(d, t, *cur)
        if timediff < self.interval:
            return 0

        steps = timediff // self.interval
        written = min(steps, self.capacity)

        # newest bucket first, then walk the ring (and the clock) backwards
        dint, minute = shift_minutes(cur[DATE_COL], cur[MINUTE_COL], steps * self.interval)
        row = self.buffer.offset(steps)
        for _ in range(written):
            self.buffer.set_row(row, (dint, minute))
            row = (row - 1) % self.capacity
            minute -= self.interval
            if minute < 0:
                days, minute = divmod(minute, MINUTES_IN_DAY)
                dint = add_days(dint, days)

        self.buffer.advance(steps)
        self._filled = min(self._filled + steps, self.capacity)
        self.last_raw = (d, t)
        self.rows_changed = written
        if steps > written:
            log.debug("gap of %d buckets exceeds ring of %d; kept newest only",
                      steps, self.capacity)
        return written

    # ---- read access ----
    def latest(self) -> Optional[Bucket]:
        if not self._filled:
            return None
        return self._current()

    def window(self, n: Optional[int] = None) -> List[Bucket]:
        """Most recent n real buckets (all held if n is None), oldest -> newest."""
        n = self._filled if n is None else max(0, min(n, self._filled))
        return [self.buffer.get_row(self.buffer.offset(-i)) for i in range(n - 1, -1, -1)]

    def bucket_times(self, n: Optional[int] = None) -> List[datetime]:
        return [bucket_datetime(d, t) for d, t in self.window(n)]


class SeriesStore:
    """One IntervalTimeSeries per timeframe; every print goes to all of them."""
    def __init__(self, cfg: Config):
        self.series: Dict[str, IntervalTimeSeries] = {
            tf: IntervalTimeSeries(minutes, capacity=cfg.buffer, min_fields=cfg.min_print_fields)
            for tf, minutes in cfg.intervals.items()
        }

    def ingest(self, sample: Sequence[float]) -> Dict[str, int]:
        return {tf: s.ingest(sample) for tf, s in self.series.items()}

    def latest(self, tf: str) -> Optional[Bucket]:
        return self.series[tf].latest()

    def window(self, tf: str, n: Optional[int] = None) -> List[Bucket]:
        return self.series[tf].window(n)
