"""
Reporting Window

An explicit date range passed into every aggregation call. Report pages used
to read it from ambient scope state; here it is always a plain value.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

DAY = timedelta(days=1)


def parse_datetime(value) -> datetime | None:
    """Parse an ISO date or timestamp into a naive UTC datetime.

    Accepts ``datetime``, ``date`` and ISO strings (``2024-06-01`` or
    ``2024-06-01T10:00:00Z``). Returns None for anything unparseable.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime.combine(value, time.min)
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class ReportingWindow:
    """Inclusive start / end of a reporting period."""

    start: datetime
    end: datetime
    label: str = ""

    @property
    def start_iso(self) -> str:
        return self.start.isoformat()

    @property
    def end_iso(self) -> str:
        return self.end.isoformat()

    def month_ending(self) -> "ReportingWindow":
        """The 30-day span ending where this window ends (month fraction 1)."""
        return ReportingWindow(start=self.end - 29 * DAY, end=self.end, label=self.label)

    def contains(self, moment) -> bool:
        parsed = parse_datetime(moment)
        if parsed is None:
            return False
        return self.start <= parsed <= self.end

    @classmethod
    def from_dict(cls, data: dict) -> "ReportingWindow":
        start = parse_datetime(data.get("start") or data.get("start_iso"))
        end = parse_datetime(data.get("end") or data.get("end_iso"))
        if start is None or end is None:
            raise ValueError(f"window requires valid start and end dates, got: {data}")
        return cls(start=start, end=end, label=data.get("label", ""))

    # -------------------------------------------------------------------------
    # Preset ranges offered by the report pages
    # -------------------------------------------------------------------------

    @classmethod
    def from_days(cls, days: int, now: datetime | None = None) -> "ReportingWindow":
        """Trailing window: midnight ``days`` days ago through now (min 1 day)."""
        now = parse_datetime(now) or _utc_now()
        start = (now - max(1, int(days)) * DAY).replace(hour=0, minute=0, second=0, microsecond=0)
        return cls(start=start, end=now, label=f"Last {max(1, int(days))} Days")

    @classmethod
    def last_month(cls, now: datetime | None = None) -> "ReportingWindow":
        now = parse_datetime(now) or _utc_now()
        first_of_this_month = datetime(now.year, now.month, 1)
        end = first_of_this_month - timedelta(microseconds=1)
        start = datetime(end.year, end.month, 1)
        return cls(start=start, end=end, label=start.strftime("%B %Y"))

    @classmethod
    def month_to_date(cls, now: datetime | None = None) -> "ReportingWindow":
        now = parse_datetime(now) or _utc_now()
        return cls(start=datetime(now.year, now.month, 1), end=now, label="Month to Date")

    @classmethod
    def last_3_months(cls, now: datetime | None = None) -> "ReportingWindow":
        now = parse_datetime(now) or _utc_now()
        month_index = now.year * 12 + (now.month - 1) - 3
        start = datetime(month_index // 12, month_index % 12 + 1, 1)
        return cls(start=start, end=now, label="Last 3 Months")

    @classmethod
    def year_to_date(cls, now: datetime | None = None) -> "ReportingWindow":
        now = parse_datetime(now) or _utc_now()
        return cls(start=datetime(now.year, 1, 1), end=now, label="Year to Date")


PRESETS = {
    "lastMonth": ReportingWindow.last_month,
    "thisMonth": ReportingWindow.month_to_date,
    "last3Months": ReportingWindow.last_3_months,
    "yearToDate": ReportingWindow.year_to_date,
}
