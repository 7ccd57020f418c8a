import json
import math
import re
from datetime import date, datetime, timezone
from typing import Any, Iterable, Optional, Tuple

import inflect
from unidecode import unidecode

from deeby_view.constants import CELL_PADDING

inflect_e = inflect.engine()

# Leading numeric prefix accepted by `to_number`, the way a lenient float
# parser reads "12px" as 12 and "abc" as nothing.
NUMERIC_PREFIX = re.compile(
    r"^\s*([+-]?(?:Infinity"
    r"|\d+\.?\d*(?:[eE][+-]?\d+)?"
    r"|\.\d+(?:[eE][+-]?\d+)?))"
)
ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}")
HEX_COLOR = re.compile(r"^#([0-9a-f]{3}|[0-9a-f]{6}|[0-9a-f]{8})$", re.I)
RGB_COLOR = re.compile(
    r"^rgba?\(\s*(\d+)\s*,\s*(\d+)\s*,\s*(\d+)(?:\s*,\s*[\d.]+)?\s*\)$", re.I
)
URL_SCHEME = re.compile(r"^(https?|ftp)://[^\s/$.?#][^\s]*$", re.I)
URL_BARE = re.compile(
    r"^(www\.)?[a-z0-9][a-z0-9-]*[a-z0-9]*\.[a-z]{2,}(/.*)?$", re.I
)

NAMED_COLORS = {
    "red": "#ff0000",
    "green": "#00ff00",
    "blue": "#0000ff",
    "black": "#000000",
    "white": "#ffffff",
    "yellow": "#ffff00",
    "cyan": "#00ffff",
    "magenta": "#ff00ff",
    "orange": "#ffa500",
    "purple": "#800080",
    "pink": "#ffc0cb",
    "brown": "#a52a2a",
    "gray": "#808080",
    "grey": "#808080",
}


def is_null(value: Any) -> bool:
    """Tell if a cell value counts as null."""
    return value is None


def is_number(value: Any) -> bool:
    """Tell if the value is a real number (booleans are not numbers here)."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_nan(value: Any) -> bool:
    return isinstance(value, float) and math.isnan(value)


def to_number(value: Any) -> float:
    """Coerce a value to a number without ever raising.

    Numbers are returned unchanged. Everything else is converted to its
    string form and the leading numeric prefix is parsed, so `"12.5kg"`
    gives `12.5`. When no prefix is present the result is `nan`.

    Args:
        value: The value to coerce.

    Returns:
        The numeric value or `nan` if the coercion failed.
    """
    if is_number(value):
        return value
    if value is None or isinstance(value, bool):
        return math.nan
    match = NUMERIC_PREFIX.match(str(value))
    if match is None:
        return math.nan
    text = match.group(1)
    if text.lstrip("+-") == "Infinity":
        return -math.inf if text.startswith("-") else math.inf
    return float(text)


def number_to_str(value: float) -> str:
    """Render a number the way a dynamic language would print it.

    Whole floats lose their trailing `.0` so that `1.0` and `1` print the
    same.
    """
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "-Infinity" if value < 0 else "Infinity"
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        return repr(value)
    return str(value)


def value_to_str(value: Any) -> str:
    """Convert any cell value to its canonical string form.

    This is the string used for equality filters and as the last resort of
    every formatter: booleans print as `true`/`false`, numbers without
    spurious decimals, mappings as JSON and sequences comma-joined.
    """
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if is_number(value):
        return number_to_str(value)
    if isinstance(value, str):
        return value
    if isinstance(value, dict):
        return json.dumps(value, default=str)
    if isinstance(value, (list, tuple)):
        return ",".join("" if v is None else value_to_str(v) for v in value)
    if isinstance(value, datetime):
        return value.isoformat(sep=" ")
    if isinstance(value, date):
        return value.isoformat()
    return str(value)


def locale_key(value: Any) -> Tuple[str, str]:
    """Compute a sort key that orders strings the way a human expects.

    Accents are folded and case is ignored for the primary ordering; the raw
    string breaks ties so that the ordering stays total.
    """
    text = value_to_str(value)
    return (unidecode(text).casefold(), text)


def parse_date(value: Any) -> Optional[datetime]:
    """Interpret a value as a moment in time.

    Accepts `datetime` and `date` instances, ISO 8601 strings and numeric
    timestamps. Timestamps below 1e11 are read as seconds, larger ones as
    milliseconds.

    Returns:
        The moment or None if the value cannot be read as one.
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if is_number(value):
        if math.isnan(value) or math.isinf(value):
            return None
        seconds = value if abs(value) < 1e11 else value / 1000.0
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not ISO_DATE.match(text):
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text)
        except ValueError:
            return None
    return None


def is_date_value(value: Any) -> bool:
    """Tell if the value looks like a date."""
    if isinstance(value, (datetime, date)):
        return True
    if isinstance(value, str):
        return parse_date(value) is not None
    if is_number(value):
        return 0 < value < 1e15
    return False


def is_color_value(value: Any) -> bool:
    """Detect hex, rgb/rgba and basic named colours."""
    if not isinstance(value, str):
        return False
    text = value.strip().lower()
    return bool(
        HEX_COLOR.match(text) or RGB_COLOR.match(text) or text in NAMED_COLORS
    )


def parse_color_to_hex(value: str) -> str:
    """Normalize a colour value to `#rrggbb`; alpha is dropped."""
    text = value.strip().lower()
    if text.startswith("#"):
        if len(text) == 4:
            return "#" + "".join(c * 2 for c in text[1:])
        return text[:7]
    match = RGB_COLOR.match(text)
    if match:
        return "#" + "".join(
            f"{min(255, int(c)):02x}" for c in match.groups()
        )
    return NAMED_COLORS.get(text, "#000000")


def is_url_value(value: Any) -> bool:
    """Detect http(s)/ftp URLs, with or without the scheme."""
    if not isinstance(value, str):
        return False
    text = value.strip()
    return bool(URL_SCHEME.match(text) or URL_BARE.match(text))


def normalize_url(value: str) -> str:
    """Add the `https://` scheme to a bare URL."""
    text = value.strip()
    if text.startswith(("http://", "https://", "ftp://")):
        return text
    return "https://" + text


def get_enum_color(value: str) -> str:
    """Compute a stable colour for a categorical value.

    The same value always maps to the same hue so that a category keeps its
    colour across pages and sessions.
    """
    h = 0
    for ch in value:
        h = (ord(ch) + ((h << 5) - h)) & 0xFFFFFFFF
    if h & 0x80000000:
        h -= 0x100000000
    return f"hsl({abs(h) % 360}, 70%, 50%)"


def estimate_text_width(text: str, font_size: int = 12) -> float:
    """Rough pixel width of a piece of text."""
    return len(text) * font_size * 0.6 + CELL_PADDING


def calculate_optimal_column_width(
    header_text: str,
    cell_values: Iterable[Any],
    min_width: int = 90,
    max_width: int = 270,
    default_width: int = 180,
) -> float:
    """Compute a column width that fits the header and the cell content.

    Narrow content shrinks the column down to half the default width and
    wide content grows it up to one and a half times the default, always
    within `[min_width, max_width]`.

    Args:
        header_text: The text of the column header.
        cell_values: The values shown in the column.
        min_width: The smallest width to return.
        max_width: The largest width to return.
        default_width: The width used when nothing else is known.

    Returns:
        The width in pixels.
    """
    header_width = estimate_text_width(header_text, 14)
    max_cell_width = 0.0
    for value in cell_values:
        text = "" if value is None else value_to_str(value)
        max_cell_width = max(max_cell_width, estimate_text_width(text, 12))

    optimal = max(header_width, max_cell_width)
    constrained = max(min_width, min(max_width, optimal))

    if (
        header_width < default_width * 0.5
        and max_cell_width < default_width * 0.5
    ):
        return max(min_width, min(constrained, default_width * 0.5))
    if optimal > default_width:
        return min(constrained, default_width * 1.5)
    return constrained
