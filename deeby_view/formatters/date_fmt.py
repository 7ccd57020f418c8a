import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

import humanize
from pydantic import field_validator

from deeby_view.constants import FORMATTER_DATE
from deeby_view.formatters.base import (
    CellFormatter,
    FormatterOptions,
    FormatResult,
    RenderedCell,
)
from deeby_view.utils import is_date_value, is_null, parse_date, value_to_str

logger = logging.getLogger(__name__)

DATE_FORMATS = ("M/D/Y", "D/M/Y", "Y-M-D", "M-D-Y", "D M Y", "M D, Y")
TIME_FORMATS = ("12h", "24h")
TIMEZONES = ("local", "utc")
MONTH_NAMES = (
    "Jan",
    "Feb",
    "Mar",
    "Apr",
    "May",
    "Jun",
    "Jul",
    "Aug",
    "Sep",
    "Oct",
    "Nov",
    "Dec",
)


class DateOptions(FormatterOptions):
    """Options of the date formatter.

    Attributes:
        date_format: The order of the date parts; one of `DATE_FORMATS`.
        time_format: `12h` or `24h`.
        show_time: Whether the time is shown after the date.
        show_seconds: Whether the seconds are part of the time.
        timezone: `local` converts aware moments to the local time zone,
            `utc` converts them to UTC. Naive moments are never converted.
    """

    date_format: str = "M/D/Y"
    time_format: str = "12h"
    show_time: bool = True
    show_seconds: bool = False
    timezone: str = "local"

    @field_validator("date_format", mode="before")
    @classmethod
    def validate_date_format(cls, v):
        return cls.choice(v, DATE_FORMATS, "M/D/Y")

    @field_validator("time_format", mode="before")
    @classmethod
    def validate_time_format(cls, v):
        return cls.choice(v, TIME_FORMATS, "12h")

    @field_validator("timezone", mode="before")
    @classmethod
    def validate_timezone(cls, v):
        return cls.choice(v, TIMEZONES, "local")

    @field_validator("show_time", mode="before")
    @classmethod
    def validate_show_time(cls, v):
        return True if v is None else bool(v)

    @field_validator("show_seconds", mode="before")
    @classmethod
    def validate_show_seconds(cls, v):
        return bool(v)


def format_date_part(moment: datetime, date_format: str) -> str:
    month, day, year = moment.month, moment.day, moment.year
    if date_format == "D/M/Y":
        return f"{day}/{month}/{year}"
    if date_format == "Y-M-D":
        return f"{year}-{month:02d}-{day:02d}"
    if date_format == "M-D-Y":
        return f"{month:02d}-{day:02d}-{year}"
    if date_format == "D M Y":
        return f"{day} {MONTH_NAMES[month - 1]} {year}"
    if date_format == "M D, Y":
        return f"{MONTH_NAMES[month - 1]} {day}, {year}"
    return f"{month}/{day}/{year}"


def format_time_part(
    moment: datetime, time_format: str, show_seconds: bool
) -> str:
    hours, minutes, seconds = moment.hour, moment.minute, moment.second
    if time_format == "12h":
        suffix = "PM" if hours >= 12 else "AM"
        hours = hours % 12 or 12
        if show_seconds:
            return f"{hours}:{minutes:02d}:{seconds:02d} {suffix}"
        return f"{hours}:{minutes:02d} {suffix}"
    if show_seconds:
        return f"{hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{hours:02d}:{minutes:02d}"


def convert_timezone(moment: datetime, tz_name: str) -> datetime:
    if moment.tzinfo is None:
        return moment
    if tz_name == "utc":
        return moment.astimezone(timezone.utc)
    return moment.astimezone()


class DateFormatter(CellFormatter):
    """Formats dates and timestamps.

    Accepts `datetime`/`date` objects, ISO 8601 strings and numeric
    timestamps (seconds or milliseconds since the epoch). Values that cannot
    be read as a moment are shown unchanged.
    """

    type = FORMATTER_DATE
    display_name = "Date/Time"
    description = "Format dates and timestamps with customizable format"
    options_model = DateOptions

    def format_parsed(self, value: Any, opts: Any) -> FormatResult:
        moment = parse_date(value)
        if moment is None:
            return value_to_str(value)
        moment = convert_timezone(moment, opts.timezone)

        result = format_date_part(moment, opts.date_format)
        if opts.show_time:
            result += " " + format_time_part(
                moment, opts.time_format, opts.show_seconds
            )
        return result

    def can_format(self, value: Any) -> bool:
        return is_date_value(value)

    def render_cell(
        self, value: Any, options: Optional[Mapping[str, Any]] = None
    ) -> Optional[RenderedCell]:
        if is_null(value):
            return RenderedCell.null()
        moment = parse_date(value)
        if moment is None:
            return None
        now = datetime.now(moment.tzinfo)
        return RenderedCell(
            text=str(self.format(value, options)),
            tooltip=(
                f"{moment.isoformat(sep=' ')} "
                f"({humanize.naturaltime(now - moment)})"
            ),
        )
