"""Working-hours and slot policy in clinic-local time."""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from clinic_scheduler.config import Settings, settings


def overlaps(
    start: datetime,
    end: datetime,
    other_start: datetime,
    other_end: datetime,
) -> bool:
    """Half-open interval overlap; touching boundaries do not conflict."""
    return start < other_end and end > other_start


@dataclass(frozen=True)
class TimeWindow:
    """Clinic working hours and fixed slot length."""

    tz: ZoneInfo
    start_hour: int
    end_hour: int
    slot_duration: timedelta

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "TimeWindow":
        """Build the policy from application settings."""
        if config.working_hours_start >= config.working_hours_end:
            raise ValueError("WORKING_HOURS_START must be before WORKING_HOURS_END")
        return cls(
            tz=ZoneInfo(config.clinic_timezone),
            start_hour=config.working_hours_start,
            end_hour=config.working_hours_end,
            slot_duration=timedelta(minutes=config.appointment_duration_minutes),
        )

    def localize(self, value: datetime) -> datetime:
        """Interpret naive values as clinic-local; convert aware ones to clinic-local."""
        if value.tzinfo is None:
            return value.replace(tzinfo=self.tz)
        return value.astimezone(self.tz)

    def end_of(self, start: datetime) -> datetime:
        """End of the appointment starting at ``start``."""
        return start + self.slot_duration

    def within_working_hours(self, start: datetime) -> bool:
        """Check that the local start hour falls in [start_hour, end_hour)."""
        local = self.localize(start)
        return self.start_hour <= local.hour < self.end_hour

    def slot_starts(self, day: date) -> list[datetime]:
        """All slot starts on a local calendar date, ascending."""
        opening = datetime.combine(day, time(hour=self.start_hour), tzinfo=self.tz)
        if self.end_hour == 24:
            closing = datetime.combine(day + timedelta(days=1), time(), tzinfo=self.tz)
        else:
            closing = datetime.combine(day, time(hour=self.end_hour), tzinfo=self.tz)

        slots = []
        current = opening
        while current < closing:
            slots.append(current)
            current += self.slot_duration
        return slots

    def day_bounds(self, day: date) -> tuple[datetime, datetime]:
        """Local midnight to next local midnight."""
        start = datetime.combine(day, time(), tzinfo=self.tz)
        return start, datetime.combine(day + timedelta(days=1), time(), tzinfo=self.tz)

    def week_bounds(self, week_start: date) -> tuple[datetime, datetime]:
        """Local Monday 00:00 to the following Monday 00:00."""
        start = datetime.combine(week_start, time(), tzinfo=self.tz)
        return start, datetime.combine(week_start + timedelta(days=7), time(), tzinfo=self.tz)

    def local_date(self, instant: datetime) -> date:
        """Clinic-local calendar date of an instant."""
        return self.localize(instant).date()


def previous_week_start(today: date) -> date:
    """Monday of the week before the one containing ``today``."""
    this_monday = today - timedelta(days=today.weekday())
    return this_monday - timedelta(days=7)
