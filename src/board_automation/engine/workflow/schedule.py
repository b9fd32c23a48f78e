"""Due-time computation for ``schedule`` triggers.

Schedule times are wall-clock UTC. A workflow is due when its most recent
scheduled occurrence falls after the last time it ran, so a tick that arrives
late still fires once (and only once) for the occurrence it missed.
"""

from __future__ import annotations

import calendar
import logging
from datetime import datetime, timedelta

from board_automation.engine.workflow.models import ScheduleConfig

logger = logging.getLogger(__name__)


def _at(day: datetime, time_of_day: str) -> datetime:
    hour, minute = (int(part) for part in time_of_day.split(":"))
    return day.replace(hour=hour, minute=minute, second=0, microsecond=0)


def _sunday_based_weekday(day: datetime) -> int:
    return (day.weekday() + 1) % 7


def latest_occurrence(schedule: ScheduleConfig, now: datetime) -> datetime | None:
    """Return the latest scheduled instant that is <= ``now``, if any."""

    if schedule.type == "custom":
        logger.debug(
            "Custom cron schedules are not evaluated",
            extra={"cron_expression": schedule.cron_expression},
        )
        return None

    if schedule.type == "daily" or (schedule.type == "weekly" and not schedule.days):
        candidate = _at(now, schedule.time)
        return candidate if candidate <= now else candidate - timedelta(days=1)

    if schedule.type == "weekly":
        for back in range(8):
            candidate = _at(now - timedelta(days=back), schedule.time)
            if candidate <= now and _sunday_based_weekday(candidate) in schedule.days:
                return candidate
        return None

    day_of_month = schedule.date or 1
    year, month = now.year, now.month
    for _ in range(2):
        last_day = calendar.monthrange(year, month)[1]
        candidate = _at(
            now.replace(year=year, month=month, day=min(day_of_month, last_day)), schedule.time
        )
        if candidate <= now:
            return candidate
        year, month = (year - 1, 12) if month == 1 else (year, month - 1)
    return None


def is_due(schedule: ScheduleConfig, *, now: datetime, since: datetime) -> bool:
    occurrence = latest_occurrence(schedule, now)
    return occurrence is not None and occurrence > since
