"""Cron schedule parsing shared by the scheduler and the retention policy."""

from datetime import timezone

from apscheduler.triggers.cron import CronTrigger  # type: ignore[import-untyped]

from lanwatch.core.errors import ValidationError


def build_cron_trigger(schedule: str) -> CronTrigger:
    """Build a CronTrigger from 5 or 6-field cron syntax.

    Raises:
        ValidationError: The schedule has the wrong field count or a bad field.
    """
    fields = schedule.split()
    try:
        if len(fields) == 5:
            minute, hour, day, month, day_of_week = fields
            return CronTrigger(
                minute=minute,
                hour=hour,
                day=day,
                month=month,
                day_of_week=day_of_week,
                timezone=timezone.utc,
            )
        if len(fields) == 6:
            second, minute, hour, day, month, day_of_week = fields
            return CronTrigger(
                second=second,
                minute=minute,
                hour=hour,
                day=day,
                month=month,
                day_of_week=day_of_week,
                timezone=timezone.utc,
            )
    except ValueError as exc:
        raise ValidationError(f"Invalid cron schedule {schedule!r}: {exc}") from exc
    raise ValidationError(f"Invalid cron schedule {schedule!r}: expected 5 or 6 fields")
