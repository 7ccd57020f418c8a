import math
from typing import Any

from deeby_view.constants import FORMATTER_SUFFIXES
from deeby_view.formatters.base import (
    FormatResult,
    NumericFormatter,
    SuffixedNumber,
    format_trimmed,
    to_exponential,
)

# (threshold, divisor, suffix) for large magnitudes, largest first.
LARGE_SUFFIXES = (
    (1e12, 1e12, "T"),
    (1e9, 1e9, "B"),
    (1e6, 1e6, "M"),
    (1e3, 1e3, "k"),
)

# (threshold, multiplier, suffix) for small magnitudes, largest first.
SMALL_SUFFIXES = (
    (1e-6, 1e6, "μ"),
    (1e-9, 1e9, "n"),
)


def suffixed(value: float) -> FormatResult:
    """Render a number with a magnitude suffix.

    Magnitudes from one thousand up get `k`, `M`, `B` or `T` and two
    decimals. Values between 1 and 1000 are shown with up to two decimals,
    values between 0.001 and 1 with exactly two, then `μ` and `n`. Anything
    smaller falls back to exponential notation.
    """
    abs_value = abs(value)
    sign = "-" if value < 0 else ""

    if value == 0:
        return "0"
    for threshold, divisor, suffix in LARGE_SUFFIXES:
        if abs_value >= threshold:
            return SuffixedNumber(
                number=f"{sign}{abs_value / divisor:.2f}", suffix=suffix
            )
    if abs_value >= 1:
        return format_trimmed(value, 2)
    if abs_value >= 1e-3:
        return f"{value:.2f}"
    for threshold, multiplier, suffix in SMALL_SUFFIXES:
        if abs_value >= threshold:
            return SuffixedNumber(
                number=f"{sign}{abs_value * multiplier:.2f}", suffix=suffix
            )
    return to_exponential(value, 2)


class SuffixesFormatter(NumericFormatter):
    type = FORMATTER_SUFFIXES
    display_name = "Suffixes (k, M, B, etc.)"
    description = (
        "Format large numbers with suffixes "
        "(k for thousands, M for millions, etc.)"
    )

    def format_number(self, value: float, opts: Any) -> FormatResult:
        if math.isinf(value):
            return to_exponential(value, 2)
        return suffixed(value)
