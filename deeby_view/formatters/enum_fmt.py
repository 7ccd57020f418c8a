from typing import Any, Mapping, Optional

from deeby_view.constants import FORMATTER_ENUM
from deeby_view.formatters.base import (
    CellFormatter,
    FormatterOptions,
    FormatResult,
    RenderedCell,
)
from deeby_view.utils import get_enum_color, is_null, value_to_str


class EnumOptions(FormatterOptions):
    show_badge: bool = True


class EnumFormatter(CellFormatter):
    """Shows a categorical value in a badge.

    The colour of the badge is derived from the value, so each category
    keeps its colour everywhere.
    """

    type = FORMATTER_ENUM
    display_name = "Category"
    description = "Show categorical values as coloured badges"
    options_model = EnumOptions

    def format_parsed(self, value: Any, opts: Any) -> FormatResult:
        return value_to_str(value)

    def can_format(self, value: Any) -> bool:
        return isinstance(value, (str, int)) and not isinstance(value, bool)

    def render_cell(
        self, value: Any, options: Optional[Mapping[str, Any]] = None
    ) -> Optional[RenderedCell]:
        if is_null(value):
            return RenderedCell.null()
        opts = self.parse_options(options)
        text = value_to_str(value)
        if not opts.show_badge:
            return None
        return RenderedCell(
            text=text,
            alignment="center",
            background=get_enum_color(text),
            color="#ffffff",
            badge=True,
        )
