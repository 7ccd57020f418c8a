from typing import Any, Mapping, Optional

from pydantic import field_validator

from deeby_view.constants import FORMATTER_PLAIN
from deeby_view.formatters.base import (
    CellFormatter,
    FormatterOptions,
    FormatResult,
    RenderedCell,
)
from deeby_view.utils import (
    is_color_value,
    is_nan,
    is_null,
    is_number,
    is_url_value,
    normalize_url,
    number_to_str,
    parse_color_to_hex,
    value_to_str,
)


class PlainOptions(FormatterOptions):
    decimal_places: Optional[int] = None

    @field_validator("decimal_places", mode="before")
    @classmethod
    def validate_decimal_places(cls, v):
        if v is None:
            return None
        return cls.clamp_int(v, 0)


class PlainFormatter(CellFormatter):
    """Shows the value as it is.

    Numbers may be given a fixed number of decimals. Text that looks like a
    link or a colour is rendered as such.
    """

    type = FORMATTER_PLAIN
    display_name = "Plain"
    description = "Format as plain value with optional decimal places"
    options_model = PlainOptions

    def format_parsed(self, value: Any, opts: Any) -> FormatResult:
        if is_number(value) and not is_nan(value):
            if opts.decimal_places is not None:
                return f"{value:.{opts.decimal_places}f}"
            return number_to_str(value)
        return value_to_str(value)

    def can_format(self, value: Any) -> bool:
        return True

    def render_cell(
        self, value: Any, options: Optional[Mapping[str, Any]] = None
    ) -> Optional[RenderedCell]:
        if is_null(value):
            return RenderedCell.null()
        text = str(self.format(value, options))
        if is_url_value(value):
            return RenderedCell(
                text=text, tooltip=text, link=normalize_url(text)
            )
        if is_color_value(value):
            return RenderedCell(
                text=text, tooltip=text, color=parse_color_to_hex(text)
            )
        if is_number(value):
            return RenderedCell(text=text, tooltip=text, alignment="right")
        return None
