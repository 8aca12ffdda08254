# core.py
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Sequence, Tuple

# ---- Config ----
@dataclass
class Config:
    pair: str = "XRPUSD"
    intervals: Dict[str, int] = None          # {"5m": 5}
    buffer: int = 256                         # buckets per timeframe kept in RAM
    tz_offset: int = -6
    min_print_fields: int = 2                 # date + minute

    def __post_init__(self):
        if self.intervals is None:
            self.intervals = {"5m": 5}

# ---- Time helpers ----
MINUTES_IN_DAY = 1440
ORIGIN_DATE: Tuple[int, int] = (19700101, 0)   # (date int, minute of day)


def int_to_date(dint: int) -> date:
    return date(dint // 10000, dint // 100 % 100, dint % 100)


def date_to_int(d: date) -> int:
    return d.year * 10000 + d.month * 100 + d.day


def add_days(dint: int, days: int) -> int:
    if days == 0:
        return dint
    return date_to_int(int_to_date(dint) + timedelta(days=days))


def minutes_between(d: int, t: int, d0: int, t0: int) -> int:
    """Signed minutes from the reference (d0, t0) to (d, t)."""
    return (int_to_date(d) - int_to_date(d0)).days * MINUTES_IN_DAY + t - t0


def shift_minutes(d: int, t: int, minutes: int) -> Tuple[int, int]:
    """Move (d, t) by any number of minutes, keeping t within one day."""
    days, t = divmod(t + minutes, MINUTES_IN_DAY)
    return add_days(d, days), t


def to_print_time(ts: datetime, tz_offset: int) -> Tuple[int, int, int]:
    """UTC datetime -> (date int, minute of day, second) at a fixed tz_offset."""
    local = ts.astimezone(timezone.utc) + timedelta(hours=tz_offset)
    return date_to_int(local.date()), local.hour * 60 + local.minute, local.second


def bucket_datetime(dint: int, minute: int) -> datetime:
    d = int_to_date(dint)
    return datetime(d.year, d.month, d.day) + timedelta(minutes=minute)

# ---- Fixed-size ring of integer rows ----
class CircularRowBuffer:
    """Raw indexable ring: rows x columns of ints plus a write index.

    Nothing wraps implicitly. Callers pass rows already taken modulo
    capacity (see offset()) and move the index with advance()/retreat().
    """

    def __init__(self, capacity: int, columns: int):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        if columns < 1:
            raise ValueError(f"columns must be >= 1, got {columns}")
        self.capacity = capacity
        self.columns = columns
        self.rows: List[List[int]] = [[0] * columns for _ in range(capacity)]
        self.index = 0

    def _check(self, row: int, col: int = 0) -> None:
        if not 0 <= row < self.capacity:
            raise IndexError(f"row {row} out of range [0, {self.capacity})")
        if not 0 <= col < self.columns:
            raise IndexError(f"column {col} out of range [0, {self.columns})")

    def get(self, row: int, col: int) -> int:
        self._check(row, col)
        return self.rows[row][col]

    def set(self, row: int, col: int, value: int) -> None:
        self._check(row, col)
        self.rows[row][col] = int(value)

    def get_row(self, row: int) -> Tuple[int, ...]:
        self._check(row)
        return tuple(self.rows[row])

    def set_row(self, row: int, values: Sequence[int]) -> None:
        self._check(row, len(values) - 1)
        self.rows[row][:len(values)] = [int(v) for v in values]

    def offset(self, steps: int) -> int:
        """Row `steps` positions away from the write index (negative = older)."""
        return (self.index + steps) % self.capacity

    def advance(self, steps: int = 1) -> None:
        self.index = (self.index + steps) % self.capacity

    def retreat(self, steps: int = 1) -> None:
        self.index = (self.index - steps) % self.capacity
