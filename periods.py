from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from typing import Optional

from errors import ValidationError

END_OF_DAY = time(23, 59, 59, 999000)


def start_of_day(day: date) -> datetime:
    return datetime.combine(day, time.min)


def end_of_day(day: date) -> datetime:
    return datetime.combine(day, END_OF_DAY)


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar-day bounds; a missing side is open-ended."""

    slug: str
    date_from: Optional[date] = None
    date_to: Optional[date] = None

    def __post_init__(self) -> None:
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValidationError("Start date must be before end date")

    @property
    def start_at(self) -> Optional[datetime]:
        return start_of_day(self.date_from) if self.date_from else None

    @property
    def end_at(self) -> Optional[datetime]:
        return end_of_day(self.date_to) if self.date_to else None


def _parse_day(value: Optional[str], label: str) -> Optional[date]:
    if not value:
        return None
    try:
        if len(value) == 10:
            return date.fromisoformat(value)
        moment = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if moment.tzinfo is not None:
            moment = moment.astimezone(timezone.utc)
        return moment.date()
    except (ValueError, OverflowError) as exc:
        raise ValidationError(f"Invalid {label} date: {value}") from exc


def resolve_date_range(
    period: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
) -> DateRange:
    today = today or datetime.utcnow().date()
    if not period:
        period = "custom" if (start or end) else "all"
    if period == "all":
        return DateRange("all")
    if period == "today":
        return DateRange("today", today, today)
    if period == "month":
        first = today.replace(day=1)
        if first.month == 12:
            next_month = first.replace(year=first.year + 1, month=1)
        else:
            next_month = first.replace(month=first.month + 1)
        return DateRange("month", first, next_month - date.resolution)
    if period == "year":
        return DateRange("year", date(today.year, 1, 1), date(today.year, 12, 31))
    if period == "custom":
        return DateRange(
            "custom", _parse_day(start, "start"), _parse_day(end, "end")
        )
    raise ValidationError(f"Unknown period: {period}")
