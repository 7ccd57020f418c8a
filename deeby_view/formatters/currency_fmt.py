from typing import Any

from pydantic import field_validator

from deeby_view.constants import FORMATTER_CURRENCY
from deeby_view.formatters.base import (
    FormatterOptions,
    NumericFormatter,
    format_grouped,
)


class CurrencyOptions(FormatterOptions):
    """Options of the currency formatter.

    Attributes:
        currency_symbol: The symbol placed in front of the amount.
        decimal_places: Number of decimals, between 0 and 20.
        use_grouping: Whether to insert the thousands separator.
    """

    currency_symbol: str = "$"
    decimal_places: int = 2
    use_grouping: bool = True

    @field_validator("currency_symbol", mode="before")
    @classmethod
    def validate_currency_symbol(cls, v):
        return v if isinstance(v, str) and v else "$"

    @field_validator("decimal_places", mode="before")
    @classmethod
    def validate_decimal_places(cls, v):
        return cls.clamp_int(v, 2)

    @field_validator("use_grouping", mode="before")
    @classmethod
    def validate_use_grouping(cls, v):
        return True if v is None else bool(v)


class CurrencyFormatter(NumericFormatter):
    type = FORMATTER_CURRENCY
    display_name = "Currency"
    description = "Format as currency with symbol and decimal places"
    options_model = CurrencyOptions

    def format_number(self, value: float, opts: Any) -> str:
        text = format_grouped(value, opts.decimal_places, opts.use_grouping)
        if text.startswith("-"):
            return f"-{opts.currency_symbol}{text[1:]}"
        return f"{opts.currency_symbol}{text}"
