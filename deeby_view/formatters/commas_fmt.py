from typing import Any

from pydantic import field_validator

from deeby_view.constants import FORMATTER_COMMAS
from deeby_view.formatters.base import (
    FormatterOptions,
    NumericFormatter,
    format_grouped,
)


class CommasOptions(FormatterOptions):
    """Options of the thousands separator formatter.

    Attributes:
        decimal_places: Number of decimals, between 0 and 20.
        use_grouping: Whether to insert the thousands separator.
    """

    decimal_places: int = 0
    use_grouping: bool = True

    @field_validator("decimal_places", mode="before")
    @classmethod
    def validate_decimal_places(cls, v):
        return cls.clamp_int(v, 0)

    @field_validator("use_grouping", mode="before")
    @classmethod
    def validate_use_grouping(cls, v):
        return True if v is None else bool(v)


class CommasFormatter(NumericFormatter):
    type = FORMATTER_COMMAS
    display_name = "Commas (thousands separator)"
    description = "Format numbers with thousands separator (commas)"
    options_model = CommasOptions

    def format_number(self, value: float, opts: Any) -> str:
        return format_grouped(value, opts.decimal_places, opts.use_grouping)
