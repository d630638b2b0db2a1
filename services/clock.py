"""Fixed-timezone clock and named time-of-day windows.

Every alert decision is taken against a :class:`ClockSnapshot` resolved in the
account timezone (``America/Sao_Paulo`` by default) through the IANA database,
so the host timezone never leaks into day boundaries or window checks.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Dict, Optional, Sequence, TypeVar
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_TIMEZONE = "America/Sao_Paulo"
MINUTES_PER_DAY = 24 * 60

W = TypeVar("W", bound="TimeWindow")


def parse_hhmm(value: object) -> Optional[int]:
    """Convert ``"HH:MM"`` (seconds ignored) into minutes since midnight."""
    if value is None:
        return None
    if isinstance(value, time):
        return value.hour * 60 + value.minute
    parts = str(value).strip().split(":")
    if len(parts) < 2:
        return None
    try:
        hour = int(parts[0])
        minute = int(parts[1])
    except ValueError:
        return None
    if not (0 <= hour <= 24 and 0 <= minute <= 59):
        return None
    total = hour * 60 + minute
    if total > MINUTES_PER_DAY:
        return None
    return total


def format_hhmm(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def normalize_hhmm(value: object) -> Optional[str]:
    minutes = parse_hhmm(value)
    if minutes is None or minutes >= MINUTES_PER_DAY:
        return None
    return format_hhmm(minutes)


@dataclass(frozen=True)
class TimeWindow:
    """Range of minutes since midnight; half-open unless ``inclusive_end``.

    Windows never wrap midnight.
    """

    name: str
    start: int
    end: int
    inclusive_end: bool = False

    def __post_init__(self) -> None:
        if not (0 <= self.start <= self.end <= MINUTES_PER_DAY):
            raise ValueError(f"Invalid window '{self.name}': {self.start}-{self.end}")

    @classmethod
    def from_hhmm(cls, name: str, start: str, end: str, *, inclusive_end: bool = False) -> "TimeWindow":
        start_minutes = parse_hhmm(start)
        end_minutes = parse_hhmm(end)
        if start_minutes is None or end_minutes is None:
            raise ValueError(f"Invalid window '{name}': {start}-{end}")
        return cls(name=name, start=start_minutes, end=end_minutes, inclusive_end=inclusive_end)

    def contains(self, minute_of_day: int) -> bool:
        if minute_of_day < self.start:
            return False
        if self.inclusive_end:
            return minute_of_day <= self.end
        return minute_of_day < self.end

    def describe(self) -> str:
        closing = "]" if self.inclusive_end else ")"
        return f"{self.name}[{format_hhmm(self.start)}-{format_hhmm(self.end)}{closing}"


@dataclass(frozen=True)
class ClockSnapshot:
    """A single instant viewed from the target timezone."""

    instant: datetime
    tz: ZoneInfo

    @property
    def local_date(self) -> date:
        return self.instant.date()

    @property
    def day_start(self) -> datetime:
        return datetime.combine(self.local_date, time.min, tzinfo=self.tz)

    @property
    def day_end(self) -> datetime:
        """Exclusive end of the local day (next local midnight)."""
        return datetime.combine(self.local_date + timedelta(days=1), time.min, tzinfo=self.tz)

    @property
    def hour(self) -> int:
        return self.instant.hour

    @property
    def minute(self) -> int:
        return self.instant.minute

    @property
    def minute_of_day(self) -> int:
        return self.instant.hour * 60 + self.instant.minute

    @property
    def hhmm(self) -> str:
        return format_hhmm(self.minute_of_day)

    @property
    def date_str(self) -> str:
        return self.local_date.isoformat()

    @property
    def month_key(self) -> str:
        return self.local_date.strftime("%Y-%m")

    @property
    def month_start(self) -> date:
        return self.local_date.replace(day=1)

    @property
    def iso_weekday(self) -> int:
        return self.local_date.isoweekday()

    @property
    def minute_key(self) -> str:
        return f"{self.date_str}-{self.hhmm}"

    def shift_days(self, days: int) -> date:
        return self.local_date + timedelta(days=days)

    def in_window(self, window: TimeWindow) -> bool:
        return window.contains(self.minute_of_day)

    def local_datetime(self, day: date, minute_of_day: int) -> datetime:
        return datetime.combine(day, time.min, tzinfo=self.tz) + timedelta(minutes=minute_of_day)


class ClockResolver:
    """Resolve instants into :class:`ClockSnapshot` objects for one timezone."""

    def __init__(
        self,
        timezone_name: str = DEFAULT_TIMEZONE,
        *,
        now_fn: Optional[Callable[[], datetime]] = None,
    ) -> None:
        try:
            self.tz = ZoneInfo(timezone_name)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone '{timezone_name}'") from exc
        self.timezone_name = timezone_name
        self._now_fn = now_fn or (lambda: datetime.now(timezone.utc))

    def resolve(self, instant: Optional[datetime] = None) -> ClockSnapshot:
        reference = instant or self._now_fn()
        if reference.tzinfo is None:
            reference = reference.replace(tzinfo=timezone.utc)
        return ClockSnapshot(instant=reference.astimezone(self.tz), tz=self.tz)

    def now(self) -> ClockSnapshot:
        return self.resolve()

    def localize(self, instant: datetime) -> datetime:
        """Attach the account timezone to naive operator input (``--at``, task arguments)."""
        if instant.tzinfo is None:
            return instant.replace(tzinfo=self.tz)
        return instant

    @staticmethod
    def match_window(snapshot: ClockSnapshot, windows: Sequence[W]) -> Optional[W]:
        """Return the first window (declaration order) containing ``snapshot``."""
        for window in windows:
            if snapshot.in_window(window):
                return window
        return None

    @staticmethod
    def window_states(snapshot: ClockSnapshot, windows: Sequence[TimeWindow]) -> Dict[str, bool]:
        return {window.name: snapshot.in_window(window) for window in windows}


__all__ = [
    "ClockResolver",
    "ClockSnapshot",
    "DEFAULT_TIMEZONE",
    "TimeWindow",
    "format_hhmm",
    "normalize_hhmm",
    "parse_hhmm",
]
