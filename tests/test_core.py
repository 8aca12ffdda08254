from datetime import date, datetime, timezone

import pytest

from core import (
    CircularRowBuffer,
    Config,
    add_days,
    bucket_datetime,
    date_to_int,
    int_to_date,
    minutes_between,
    shift_minutes,
    to_print_time,
)


def test_config_defaults() -> None:
    cfg = Config()
    assert cfg.intervals == {"5m": 5}
    assert cfg.buffer == 256
    assert Config(intervals={"1m": 1}).intervals == {"1m": 1}


def test_date_int_conversion() -> None:
    assert int_to_date(20240229) == date(2024, 2, 29)
    assert date_to_int(date(1999, 12, 31)) == 19991231
    with pytest.raises(ValueError):
        int_to_date(20241301)


def test_add_days_crosses_month_and_year() -> None:
    assert add_days(20231231, 1) == 20240101
    assert add_days(20240301, -1) == 20240229
    assert add_days(20240115, 0) == 20240115


def test_minutes_between_is_front_minus_reference() -> None:
    assert minutes_between(20240102, 3, 20240101, 1435) == 8
    assert minutes_between(20240101, 1435, 20240102, 3) == -8
    assert minutes_between(20240101, 600, 20240101, 600) == 0


def test_shift_minutes_wraps_days() -> None:
    assert shift_minutes(20240101, 1435, 10) == (20240102, 5)
    assert shift_minutes(20240102, 5, -10) == (20240101, 1435)
    assert shift_minutes(20240101, 0, 3 * 1440 + 7) == (20240104, 7)
    assert shift_minutes(20240101, 0, -1) == (20231231, 1439)


def test_to_print_time_applies_offset() -> None:
    ts = datetime(2024, 1, 1, 18, 5, 30, tzinfo=timezone.utc)
    assert to_print_time(ts, -6) == (20240101, 725, 30)
    # offset pulls the print back into the previous local day
    ts = datetime(2024, 1, 2, 3, 0, tzinfo=timezone.utc)
    assert to_print_time(ts, -6) == (20240101, 1260, 0)


def test_bucket_datetime() -> None:
    assert bucket_datetime(20240101, 605) == datetime(2024, 1, 1, 10, 5)


# ---- CircularRowBuffer ----

def test_buffer_starts_zeroed() -> None:
    buf = CircularRowBuffer(3, 2)
    assert buf.index == 0
    assert buf.rows == [[0, 0], [0, 0], [0, 0]]


@pytest.mark.parametrize("capacity,columns", [(0, 2), (3, 0), (-1, 1)])
def test_buffer_rejects_bad_shape(capacity: int, columns: int) -> None:
    with pytest.raises(ValueError):
        CircularRowBuffer(capacity, columns)


def test_buffer_get_set() -> None:
    buf = CircularRowBuffer(4, 2)
    buf.set(2, 1, 605)
    assert buf.get(2, 1) == 605
    buf.set_row(3, (20240101, 610))
    assert buf.get_row(3) == (20240101, 610)


def test_buffer_index_errors() -> None:
    buf = CircularRowBuffer(4, 2)
    with pytest.raises(IndexError):
        buf.get(0, 2)
    with pytest.raises(IndexError):
        buf.set(0, -1, 1)
    # rows are not wrapped for the caller
    with pytest.raises(IndexError):
        buf.get(4, 0)
    with pytest.raises(IndexError):
        buf.get(-1, 0)
    with pytest.raises(IndexError):
        buf.set_row(0, (1, 2, 3))


def test_buffer_advance_and_retreat_wrap() -> None:
    buf = CircularRowBuffer(4, 1)
    buf.set(0, 0, 7)
    buf.advance(3)
    assert buf.index == 3
    buf.advance()
    assert buf.index == 0
    buf.retreat()
    assert buf.index == 3
    buf.advance(10)
    assert buf.index == 1
    buf.retreat(6)
    assert buf.index == 3
    # moving the index never touches the cells
    assert buf.rows == [[7], [0], [0], [0]]


def test_buffer_offset() -> None:
    buf = CircularRowBuffer(5, 1)
    buf.advance(4)
    assert buf.offset(0) == 4
    assert buf.offset(1) == 0
    assert buf.offset(-6) == 3
    assert buf.index == 4
