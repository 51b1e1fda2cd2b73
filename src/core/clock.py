"""Wall-clock access for the outer request and job boundaries.

The billing core never calls this; callers read "today" here once and pass
it down as an explicit `as_of` date.
"""

from datetime import date, datetime
from zoneinfo import ZoneInfo

from src.core.config import settings


def today() -> date:
    """Return the current date in the portal's configured timezone."""
    return datetime.now(ZoneInfo(settings.timezone)).date()


def first_day_of_month(value: date) -> date:
    return value.replace(day=1)


def competence_month(value: date) -> str:
    """Format a date as a YYYY-MM competence month."""
    return f"{value.year:04d}-{value.month:02d}"
