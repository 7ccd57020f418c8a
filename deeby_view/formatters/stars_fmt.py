import math
from typing import Any

from pydantic import field_validator

from deeby_view.constants import FORMATTER_STARS
from deeby_view.formatters.base import FormatterOptions, NumericFormatter

FULL_STAR = "★"
HALF_STAR = "½"
EMPTY_STAR = "☆"


class StarsOptions(FormatterOptions):
    max_stars: int = 5

    @field_validator("max_stars", mode="before")
    @classmethod
    def validate_max_stars(cls, v):
        return cls.clamp_int(v, 5, low=1, high=10)


class StarsFormatter(NumericFormatter):
    """Shows a rating as a row of stars.

    The value is clamped to `[0, max_stars]` and rounded to the nearest half
    star.
    """

    type = FORMATTER_STARS
    display_name = "Stars (Rating)"
    description = "Format numbers as star ratings (0-5 scale)"
    options_model = StarsOptions

    def format_number(self, value: float, opts: Any) -> str:
        max_stars = opts.max_stars
        if math.isinf(value):
            value = max_stars if value > 0 else 0
        clamped = max(0, min(max_stars, value))
        rounded = math.floor(clamped * 2 + 0.5) / 2
        full = int(rounded)
        half = rounded - full > 0
        empty = max_stars - full - (1 if half else 0)
        return (
            FULL_STAR * full + (HALF_STAR if half else "") + EMPTY_STAR * empty
        )
