from typing import Any

from pydantic import field_validator

from deeby_view.constants import FORMATTER_UNITS
from deeby_view.formatters.base import (
    FormatterOptions,
    NumericFormatter,
    format_grouped,
)


class UnitsOptions(FormatterOptions):
    """Options of the units formatter.

    Attributes:
        unit: The unit appended after the number (`ft`, `kg`).
        decimal_places: Number of decimals, between 0 and 20.
        use_grouping: Whether to insert the thousands separator.
    """

    unit: str = ""
    decimal_places: int = 0
    use_grouping: bool = False

    @field_validator("unit", mode="before")
    @classmethod
    def validate_unit(cls, v):
        return v if isinstance(v, str) else ""

    @field_validator("decimal_places", mode="before")
    @classmethod
    def validate_decimal_places(cls, v):
        return cls.clamp_int(v, 0)

    @field_validator("use_grouping", mode="before")
    @classmethod
    def validate_use_grouping(cls, v):
        return False if v is None else bool(v)


class UnitsFormatter(NumericFormatter):
    type = FORMATTER_UNITS
    display_name = "Units"
    description = "Format numbers with a unit suffix (ft, m, lbs, etc.)"
    options_model = UnitsOptions

    def format_number(self, value: float, opts: Any) -> str:
        text = format_grouped(value, opts.decimal_places, opts.use_grouping)
        return f"{text} {opts.unit}" if opts.unit else text
