from typing import Any

from pydantic import field_validator

from deeby_view.constants import FORMATTER_PERCENT
from deeby_view.formatters.base import (
    FormatterOptions,
    NumericFormatter,
    format_grouped,
)


class PercentOptions(FormatterOptions):
    decimal_places: int = 1

    @field_validator("decimal_places", mode="before")
    @classmethod
    def validate_decimal_places(cls, v):
        return cls.clamp_int(v, 1)


class PercentFormatter(NumericFormatter):
    """Shows numbers as percentages.

    Values between 0 and 1 are taken to be fractions and multiplied by 100;
    all other values are assumed to already be percentages.
    """

    type = FORMATTER_PERCENT
    display_name = "Percent"
    description = "Format numbers as percentages"
    options_model = PercentOptions

    def format_number(self, value: float, opts: Any) -> str:
        if 0 <= value <= 1:
            value = value * 100
        return f"{format_grouped(value, opts.decimal_places, False)}%"
