from typing import Any

from pydantic import field_validator

from deeby_view.constants import FORMATTER_SCIENTIFIC
from deeby_view.formatters.base import (
    FormatterOptions,
    NumericFormatter,
    to_exponential,
)


class ScientificOptions(FormatterOptions):
    decimal_places: int = 2

    @field_validator("decimal_places", mode="before")
    @classmethod
    def validate_decimal_places(cls, v):
        return cls.clamp_int(v, 2)


class ScientificFormatter(NumericFormatter):
    type = FORMATTER_SCIENTIFIC
    display_name = "Scientific Notation"
    description = "Format numbers in scientific notation (e.g., 1.23e+5)"
    options_model = ScientificOptions

    def format_number(self, value: float, opts: Any) -> str:
        return to_exponential(value, opts.decimal_places)
