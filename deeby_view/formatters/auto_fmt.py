import logging
import math
from datetime import date
from typing import Any, Dict, Iterable, List, Optional

from attrs import define, field

from deeby_view.constants import (
    CELL_PADDING,
    CHAR_WIDTH,
    FORMATTER_AUTO,
    FORMATTER_COMMAS,
    FORMATTER_CURRENCY,
    FORMATTER_DATE,
    FORMATTER_ENUM,
    FORMATTER_PERCENT,
    FORMATTER_PLAIN,
    FORMATTER_STARS,
    FORMATTER_SUFFIXES,
    FORMATTER_YEAR,
    SUFFIX_THRESHOLD,
)
from deeby_view.formatters.base import (
    CellFormatter,
    FormatResult,
    FormatterConfig,
    format_grouped,
    format_trimmed,
)
from deeby_view.formatters.suffixes_fmt import suffixed
from deeby_view.utils import (
    is_nan,
    is_null,
    is_number,
    parse_date,
    value_to_str,
)

logger = logging.getLogger(__name__)

DATE_TYPE_MARKERS = ("timestamp", "date", "time")
DATE_NAME_HINTS = (
    "timestamp",
    "date",
    "time",
    "created",
    "updated",
    "modified",
)
YEAR_NAME_HINTS = ("yr", "year")
PERCENT_NAME_HINTS = ("pct", "percent", "%")
CURRENCY_NAME_HINTS = (
    "price",
    "cost",
    "amount",
    "revenue",
    "salary",
    "wage",
    "fee",
    "payment",
)
RATING_NAME_HINTS = ("rating", "rate", "score", "star")

# Unix timestamps between 2000-01-01 and 2100-01-01.
TIMESTAMP_SECONDS = (946_684_800, 4_102_444_800)
TIMESTAMP_MILLIS = (946_684_800_000, 4_102_444_800_000)

# Characters assumed to fit a column when its width is not known.
DEFAULT_AVAILABLE_CHARS = 20

# Magnitudes below this one are shown with the small suffixes.
TINY_MAGNITUDE = 1e-7

# Magnitudes from this one up have too many digits to read at a glance.
PRECISION_MAGNITUDE = 1e7

DEFAULT_DATE_OPTIONS = {
    "date_format": "M/D/Y",
    "time_format": "12h",
    "show_time": True,
    "show_seconds": False,
    "timezone": "local",
}


class AutoFormatter(CellFormatter):
    """Placeholder formatter for columns that were never configured.

    The projector replaces it with the result of `detect_formatter()`; when
    used directly it shows numbers with the thousands separator and up to
    three decimals.
    """

    type = FORMATTER_AUTO
    display_name = "Auto (detect from data)"
    description = "Automatically detect the best format from the data"

    def format_parsed(self, value: Any, opts: Any) -> FormatResult:
        if is_number(value) and not is_nan(value):
            return format_trimmed(value, 3)
        return value_to_str(value)

    def can_format(self, value: Any) -> bool:
        return True


def available_chars(width: Optional[float]) -> int:
    """The number of characters that fit in a column of this width."""
    if not width:
        return DEFAULT_AVAILABLE_CHARS
    return max(0, math.floor((width - CELL_PADDING) / CHAR_WIDTH))


def _has_hint(name: str, hints: Iterable[str]) -> bool:
    return any(h in name for h in hints)


def _longest(values: List[float], decimals: int) -> int:
    return max(len(format_grouped(v, decimals)) for v in values)


def detect_formatter(
    values: Iterable[Any],
    column_name: str,
    declared_type: Optional[str] = None,
    width: Optional[float] = None,
    suffix_threshold: float = SUFFIX_THRESHOLD,
) -> FormatterConfig:
    """Choose a formatter for a column.

    The choice is a pure function of the arguments and never `auto`. The
    rules are tried in order and the first one that matches wins:

    1. declared date/time types get the date formatter;
    2. declared enum types get the category formatter;
    3. columns that hold dates (objects or ISO strings) get the date
       formatter, other non-numeric columns are shown as they are;
    4. the name of the column hints at timestamps (with values in the range
       of Unix timestamps), years, percentages, money or ratings;
    5. numbers with eight or more integer digits, large numbers that do
       not fit the column with thousands separators but do fit with a
       magnitude suffix, and tiny numbers, get suffixes;
    6. other numbers get the thousands separator, with no decimals for
       whole numbers and otherwise as many decimals (two at most) as fit.

    Args:
        values: The values of the column.
        column_name: The name of the column.
        declared_type: The type reported by the database.
        width: The width of the column in pixels.
        suffix_threshold: The smallest magnitude that may get a suffix.

    Returns:
        The configuration to use for the column.
    """
    name = column_name.lower()
    d_type = (declared_type or "").lower()

    if _has_hint(d_type, DATE_TYPE_MARKERS):
        return FormatterConfig(FORMATTER_DATE, DEFAULT_DATE_OPTIONS)
    if "enum" in d_type:
        return FormatterConfig(FORMATTER_ENUM)

    non_null = [v for v in values if not is_null(v)]
    numbers = [v for v in non_null if is_number(v) and not is_nan(v)]
    finite = [v for v in numbers if not math.isinf(v)]
    all_numeric = bool(numbers) and len(numbers) == len(non_null)

    if not all_numeric:
        if non_null and all(
            isinstance(v, date)
            or (isinstance(v, str) and parse_date(v) is not None)
            for v in non_null
        ):
            return FormatterConfig(FORMATTER_DATE, DEFAULT_DATE_OPTIONS)
        return FormatterConfig(FORMATTER_PLAIN)
    if not finite:
        return FormatterConfig(FORMATTER_PLAIN)

    min_v, max_v = min(finite), max(finite)

    if _has_hint(name, DATE_NAME_HINTS) and (
        TIMESTAMP_SECONDS[0] <= min_v and max_v <= TIMESTAMP_SECONDS[1]
        or TIMESTAMP_MILLIS[0] <= min_v and max_v <= TIMESTAMP_MILLIS[1]
    ):
        return FormatterConfig(FORMATTER_DATE, DEFAULT_DATE_OPTIONS)
    if _has_hint(name, YEAR_NAME_HINTS):
        return FormatterConfig(FORMATTER_YEAR)
    if _has_hint(name, PERCENT_NAME_HINTS):
        return FormatterConfig(FORMATTER_PERCENT, {"decimal_places": 1})
    if _has_hint(name, CURRENCY_NAME_HINTS):
        return FormatterConfig(
            FORMATTER_CURRENCY,
            {
                "currency_symbol": "$",
                "decimal_places": 2,
                "use_grouping": True,
            },
        )
    if _has_hint(name, RATING_NAME_HINTS) and 0 <= min_v and max_v <= 5:
        halves = [v for v in finite if float(v * 2).is_integer()]
        if len(halves) / len(finite) > 0.8:
            return FormatterConfig(FORMATTER_STARS, {"max_stars": 5})

    chars = available_chars(width)
    max_abs = max(abs(v) for v in finite)
    non_zero = [abs(v) for v in finite if v != 0]
    min_abs = min(non_zero) if non_zero else 1

    if max_abs >= max(suffix_threshold, PRECISION_MAGNITUDE):
        return FormatterConfig(FORMATTER_SUFFIXES)
    if max_abs >= suffix_threshold:
        grouped_len = _longest(finite, 0)
        suffixed_len = max(len(str(suffixed(v))) for v in finite)
        if grouped_len > chars and suffixed_len <= chars:
            return FormatterConfig(FORMATTER_SUFFIXES)
    if 0 < min_abs < TINY_MAGNITUDE:
        return FormatterConfig(FORMATTER_SUFFIXES)

    if all(float(v).is_integer() for v in finite):
        return FormatterConfig(
            FORMATTER_COMMAS, {"decimal_places": 0, "use_grouping": True}
        )

    decimals = 0
    for candidate in (2, 1):
        if _longest(finite, candidate) <= chars:
            decimals = candidate
            break
    return FormatterConfig(
        FORMATTER_COMMAS, {"decimal_places": decimals, "use_grouping": True}
    )


@define
class AutoFormatCache:
    """The formatters detected for the columns of one view.

    The detection reads the values, the columns and their widths, so the
    owner clears the cache as a whole whenever one of them changes.

    Attributes:
        suffix_threshold: Passed on to `detect_formatter()`.
    """

    suffix_threshold: float = field(default=SUFFIX_THRESHOLD)
    _entries: Dict[str, FormatterConfig] = field(factory=dict, repr=False)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, column_name: str) -> bool:
        return column_name in self._entries

    def get(self, column_name: str) -> Optional[FormatterConfig]:
        return self._entries.get(column_name)

    def detect(
        self,
        column_name: str,
        values: Iterable[Any],
        declared_type: Optional[str] = None,
        width: Optional[float] = None,
    ) -> FormatterConfig:
        """Return the cached formatter of a column, detecting it if needed."""
        result = self._entries.get(column_name)
        if result is None:
            result = detect_formatter(
                values,
                column_name,
                declared_type=declared_type,
                width=width,
                suffix_threshold=self.suffix_threshold,
            )
            logger.debug(
                "Detected formatter %s for column %s", result.type, column_name
            )
            self._entries[column_name] = result
        return result

    def clear(self) -> None:
        if self._entries:
            logger.debug(
                "Clearing %d detected column formatter(s)", len(self._entries)
            )
        self._entries.clear()
