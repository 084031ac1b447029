"""Hour windows and inclusive hourly ranges for the pageview dumps."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import Iterator, Optional

ONE_HOUR = timedelta(hours=1)

# Hourly pageview dumps start here; earlier hours were never published.
FIRST_AVAILABLE_HOUR = datetime(2015, 5, 1, 1, 0)

DEFAULT_URL_TEMPLATE = (
    "https://dumps.wikimedia.org/other/pageviews/"
    "{year}/{year}-{month}/pageviews-{iso_date}-{hhmmss}.gz"
)


def truncate_to_hour(value: datetime) -> datetime:
    return value.replace(minute=0, second=0, microsecond=0)


@dataclass(frozen=True)
class HourWindow:
    """One unit of work: a single hourly dump and its single output file."""

    timestamp: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "timestamp", truncate_to_hour(self.timestamp))

    @property
    def label(self) -> str:
        """``yyyyMMdd-HH``, shared by the temp and output file names."""
        return self.timestamp.strftime("%Y%m%d-%H")

    def download_url(self, template: str = DEFAULT_URL_TEMPLATE) -> str:
        ts = self.timestamp
        return template.format(
            year=ts.strftime("%Y"),
            month=ts.strftime("%m"),
            iso_date=ts.strftime("%Y%m%d"),
            hhmmss=ts.strftime("%H%M%S"),
        )

    def temp_path(self, temp_dir: Path) -> Path:
        return Path(temp_dir) / f"{self.label}.gz"

    def output_path(self, output_dir: Path) -> Path:
        return Path(output_dir) / self.label

    def __str__(self) -> str:
        return self.timestamp.isoformat(timespec="minutes")


class HourRange:
    """
    Inclusive, restartable sequence of hour windows from ``start`` to ``end``.

    Both bounds are truncated to the hour. Every call to ``iter()`` starts a
    fresh walk, so the same range can be iterated more than once (dry runs log
    it before the real loop consumes it).
    """

    def __init__(self, start: datetime, end: datetime):
        self.start = truncate_to_hour(start)
        self.end = truncate_to_hour(end)
        if self.start > self.end:
            raise ValueError(f"start ({self.start}) cannot be after end ({self.end})")

    def __iter__(self) -> Iterator[HourWindow]:
        current = self.start
        while current <= self.end:
            yield HourWindow(current)
            current += ONE_HOUR

    def __len__(self) -> int:
        return int((self.end - self.start) // ONE_HOUR) + 1

    def __repr__(self) -> str:
        return f"HourRange({self.start.isoformat()}, {self.end.isoformat()})"


def validate_dates(start: datetime, end: datetime, now: Optional[datetime] = None) -> None:
    """Reject ranges the dump archive cannot serve. Raises ``ValueError``."""
    now = now or datetime.now()
    if start > end:
        raise ValueError("start_time cannot be after end_time")
    if start > now or end > now:
        raise ValueError("start_time and end_time must both be in the past")
    if start < FIRST_AVAILABLE_HOUR or end < FIRST_AVAILABLE_HOUR:
        raise ValueError(
            "start_time and end_time must both be on or after "
            f"{FIRST_AVAILABLE_HOUR.isoformat(timespec='minutes')}, "
            "the first hour with published pageview dumps"
        )
