"""
Calendar Engine Module

Deterministic proleptic-Gregorian calendar over integer timestamps (seconds
since 1970-01-01T00:00:00). Conversions use the integer Julian day number
algorithm with truncating division, so no floating point is ever involved.
All functions are pure and never touch ledger state.
"""

import calendar
from dataclasses import dataclass
from typing import Tuple

from .exceptions import DomainError, RangeError


SECONDS_PER_DAY = 24 * 60 * 60
SECONDS_PER_HOUR = 60 * 60
SECONDS_PER_MINUTE = 60
OFFSET19700101 = 2440588  # Julian day number of the epoch

DOW_MON = 1
DOW_TUE = 2
DOW_WED = 3
DOW_THU = 4
DOW_FRI = 5
DOW_SAT = 6
DOW_SUN = 7

DEFAULT_LOCAL_OFFSET = 7 * SECONDS_PER_HOUR


@dataclass(frozen=True)
class CivilDateTime:
    """Civil date-time fields derived from a timestamp"""
    year: int
    month: int
    day: int
    hour: int = 0
    minute: int = 0
    second: int = 0

    def as_tuple(self) -> Tuple[int, int, int, int, int, int]:
        return (self.year, self.month, self.day, self.hour, self.minute, self.second)

    def isoformat(self) -> str:
        return (f"{self.year:04d}-{self.month:02d}-{self.day:02d}"
                f"T{self.hour:02d}:{self.minute:02d}:{self.second:02d}")


def _tdiv(numerator: int, denominator: int) -> int:
    """Integer division truncating toward zero (C semantics)"""
    quotient = abs(numerator) // abs(denominator)
    if (numerator < 0) != (denominator < 0):
        return -quotient
    return quotient


def _days_from_date(year: int, month: int, day: int) -> int:
    if year < 1970:
        raise DomainError(f"Year {year} is before 1970", {"year": year})

    # (month - 14) / 12 is -1 for Jan/Feb and 0 otherwise, only under truncation
    month_adj = _tdiv(month - 14, 12)
    return (
        day
        - 32075
        + _tdiv(1461 * (year + 4800 + month_adj), 4)
        + _tdiv(367 * (month - 2 - month_adj * 12), 12)
        - _tdiv(3 * _tdiv(year + 4900 + month_adj, 100), 4)
        - OFFSET19700101
    )


def _days_to_date(days: int) -> Tuple[int, int, int]:
    l = days + 68569 + OFFSET19700101
    n = _tdiv(4 * l, 146097)
    l = l - _tdiv(146097 * n + 3, 4)
    year = _tdiv(4000 * (l + 1), 1461001)
    l = l - _tdiv(1461 * year, 4) + 31
    month = _tdiv(80 * l, 2447)
    day = l - _tdiv(2447 * month, 80)
    l = _tdiv(month, 11)
    month = month + 2 - 12 * l
    year = 100 * (n - 49) + year + l
    return year, month, day


def _check_timestamp(timestamp: int) -> None:
    if timestamp < 0:
        raise DomainError(f"Timestamp {timestamp} is before the epoch", {"timestamp": timestamp})


def _compose(year: int, month: int, day: int, time_of_day: int) -> int:
    """Build a timestamp for calendar arithmetic results"""
    if year < 1970:
        raise RangeError(f"Result year {year} is before 1970", {"year": year})
    return _days_from_date(year, month, day) * SECONDS_PER_DAY + time_of_day


# --- Conversions ---

def timestamp_from_date(year: int, month: int, day: int) -> int:
    """
    Convert a civil date to a timestamp at midnight

    No validity check is performed; use is_valid_date first if needed.

    Raises:
        DomainError: If year is before 1970
    """
    return _days_from_date(year, month, day) * SECONDS_PER_DAY


def timestamp_from_datetime(
    year: int,
    month: int,
    day: int,
    hour: int = 0,
    minute: int = 0,
    second: int = 0
) -> int:
    """
    Convert civil date-time fields to a timestamp

    Args:
        year: Year (1970 or later)
        month: Month 1..12
        day: Day of month
        hour: Hour 0..23
        minute: Minute 0..59
        second: Second 0..59

    Returns:
        Seconds since the epoch

    Raises:
        DomainError: If year is before 1970
    """
    return (
        timestamp_from_date(year, month, day)
        + hour * SECONDS_PER_HOUR
        + minute * SECONDS_PER_MINUTE
        + second
    )


def timestamp_to_date(timestamp: int) -> Tuple[int, int, int]:
    """Convert a timestamp to (year, month, day)"""
    _check_timestamp(timestamp)
    return _days_to_date(timestamp // SECONDS_PER_DAY)


def timestamp_to_datetime(timestamp: int) -> CivilDateTime:
    """
    Convert a timestamp to civil date-time fields

    Total for every non-negative timestamp.
    """
    _check_timestamp(timestamp)
    year, month, day = _days_to_date(timestamp // SECONDS_PER_DAY)
    seconds = timestamp % SECONDS_PER_DAY
    return CivilDateTime(
        year=year,
        month=month,
        day=day,
        hour=seconds // SECONDS_PER_HOUR,
        minute=seconds % SECONDS_PER_HOUR // SECONDS_PER_MINUTE,
        second=seconds % SECONDS_PER_MINUTE
    )


# --- Validity ---

def is_leap_year(year: int) -> bool:
    """Gregorian leap year rule"""
    return calendar.isleap(year)


def days_in_month(year: int, month: int) -> int:
    if not 1 <= month <= 12:
        raise DomainError(f"Month {month} is out of range", {"month": month})
    return calendar.monthrange(year, month)[1]


def is_valid_date(year: int, month: int, day: int) -> bool:
    if year < 1970 or not 1 <= month <= 12:
        return False
    return 1 <= day <= days_in_month(year, month)


def is_valid_datetime(
    year: int,
    month: int,
    day: int,
    hour: int,
    minute: int,
    second: int
) -> bool:
    return (
        is_valid_date(year, month, day)
        and 0 <= hour < 24
        and 0 <= minute < 60
        and 0 <= second < 60
    )


def is_leap_year_at(timestamp: int) -> bool:
    year, _, _ = timestamp_to_date(timestamp)
    return is_leap_year(year)


def days_in_month_at(timestamp: int) -> int:
    year, month, _ = timestamp_to_date(timestamp)
    return days_in_month(year, month)


def day_of_week(timestamp: int) -> int:
    """
    Day of week for a timestamp, 1 = Monday .. 7 = Sunday

    The epoch (day 0) was a Thursday.
    """
    _check_timestamp(timestamp)
    days = timestamp // SECONDS_PER_DAY
    return (days + 3) % 7 + 1


# --- Field accessors ---

def get_year(timestamp: int) -> int:
    return timestamp_to_date(timestamp)[0]


def get_month(timestamp: int) -> int:
    return timestamp_to_date(timestamp)[1]


def get_day(timestamp: int) -> int:
    return timestamp_to_date(timestamp)[2]


def get_hour(timestamp: int) -> int:
    _check_timestamp(timestamp)
    return timestamp % SECONDS_PER_DAY // SECONDS_PER_HOUR


def get_minute(timestamp: int) -> int:
    _check_timestamp(timestamp)
    return timestamp % SECONDS_PER_HOUR // SECONDS_PER_MINUTE


def get_second(timestamp: int) -> int:
    _check_timestamp(timestamp)
    return timestamp % SECONDS_PER_MINUTE


# --- Arithmetic ---

def _require_forward(timestamp: int, result: int) -> int:
    if result < timestamp:
        raise RangeError("Addition moved time backward",
                         {"timestamp": timestamp, "result": result})
    return result


def _require_backward(timestamp: int, result: int) -> int:
    if result > timestamp:
        raise RangeError("Subtraction moved time forward",
                         {"timestamp": timestamp, "result": result})
    if result < 0:
        raise RangeError("Subtraction moved time before the epoch",
                         {"timestamp": timestamp, "result": result})
    return result


def _shift_months(timestamp: int, months: int) -> int:
    """Move by whole months, clamping the day to the target month's end"""
    year, month, day = timestamp_to_date(timestamp)
    year, month_index = divmod(year * 12 + (month - 1) + months, 12)
    month = month_index + 1
    day = min(day, days_in_month(year, month))
    return _compose(year, month, day, timestamp % SECONDS_PER_DAY)


def add_years(timestamp: int, years: int) -> int:
    """
    Add calendar years, keeping the clock time

    Feb 29 moves to Feb 28 when the target year is not a leap year.
    """
    return _require_forward(timestamp, _shift_months(timestamp, years * 12))


def add_months(timestamp: int, months: int) -> int:
    """
    Add calendar months, keeping the clock time

    The day of month is clamped to the last day of the target month, so
    Jan 31 + 1 month lands on the last day of February.

    Raises:
        RangeError: If the result would be earlier than the input
    """
    return _require_forward(timestamp, _shift_months(timestamp, months))


def add_days(timestamp: int, days: int) -> int:
    return _require_forward(timestamp, timestamp + days * SECONDS_PER_DAY)


def add_hours(timestamp: int, hours: int) -> int:
    return _require_forward(timestamp, timestamp + hours * SECONDS_PER_HOUR)


def add_minutes(timestamp: int, minutes: int) -> int:
    return _require_forward(timestamp, timestamp + minutes * SECONDS_PER_MINUTE)


def add_seconds(timestamp: int, seconds: int) -> int:
    return _require_forward(timestamp, timestamp + seconds)


def sub_years(timestamp: int, years: int) -> int:
    return _require_backward(timestamp, _shift_months(timestamp, -years * 12))


def sub_months(timestamp: int, months: int) -> int:
    """Subtract calendar months with the same clamping as add_months"""
    return _require_backward(timestamp, _shift_months(timestamp, -months))


def sub_days(timestamp: int, days: int) -> int:
    return _require_backward(timestamp, timestamp - days * SECONDS_PER_DAY)


def sub_hours(timestamp: int, hours: int) -> int:
    return _require_backward(timestamp, timestamp - hours * SECONDS_PER_HOUR)


def sub_minutes(timestamp: int, minutes: int) -> int:
    return _require_backward(timestamp, timestamp - minutes * SECONDS_PER_MINUTE)


def sub_seconds(timestamp: int, seconds: int) -> int:
    return _require_backward(timestamp, timestamp - seconds)


# --- Differences ---

def _check_order(from_timestamp: int, to_timestamp: int) -> None:
    if from_timestamp > to_timestamp:
        raise DomainError("Start of interval is after its end",
                          {"from": from_timestamp, "to": to_timestamp})


def diff_years(from_timestamp: int, to_timestamp: int) -> int:
    """Difference of the calendar year fields, not elapsed years"""
    _check_order(from_timestamp, to_timestamp)
    return get_year(to_timestamp) - get_year(from_timestamp)


def diff_months(from_timestamp: int, to_timestamp: int) -> int:
    """Difference of the calendar (year, month) fields"""
    _check_order(from_timestamp, to_timestamp)
    from_year, from_month, _ = timestamp_to_date(from_timestamp)
    to_year, to_month, _ = timestamp_to_date(to_timestamp)
    return (to_year * 12 + to_month) - (from_year * 12 + from_month)


def diff_days(from_timestamp: int, to_timestamp: int) -> int:
    _check_order(from_timestamp, to_timestamp)
    return (to_timestamp - from_timestamp) // SECONDS_PER_DAY


def diff_hours(from_timestamp: int, to_timestamp: int) -> int:
    _check_order(from_timestamp, to_timestamp)
    return (to_timestamp - from_timestamp) // SECONDS_PER_HOUR


def diff_minutes(from_timestamp: int, to_timestamp: int) -> int:
    _check_order(from_timestamp, to_timestamp)
    return (to_timestamp - from_timestamp) // SECONDS_PER_MINUTE


def diff_seconds(from_timestamp: int, to_timestamp: int) -> int:
    _check_order(from_timestamp, to_timestamp)
    return to_timestamp - from_timestamp


# --- Local time ---

def to_local(timestamp: int, offset_seconds: int = DEFAULT_LOCAL_OFFSET) -> int:
    """Shift a UTC timestamp into a fixed-offset local zone (no DST)"""
    _check_timestamp(timestamp)
    result = timestamp + offset_seconds
    if result < 0:
        raise RangeError("Local time falls before the epoch",
                         {"timestamp": timestamp, "offset": offset_seconds})
    return result


def from_local(timestamp: int, offset_seconds: int = DEFAULT_LOCAL_OFFSET) -> int:
    """Inverse of to_local"""
    _check_timestamp(timestamp)
    result = timestamp - offset_seconds
    if result < 0:
        raise RangeError("UTC time falls before the epoch",
                         {"timestamp": timestamp, "offset": offset_seconds})
    return result
