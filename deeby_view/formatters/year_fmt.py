from typing import Any

from deeby_view.constants import FORMATTER_YEAR
from deeby_view.formatters.base import NumericFormatter
from deeby_view.utils import number_to_str


class YearFormatter(NumericFormatter):
    type = FORMATTER_YEAR
    display_name = "Year (no commas)"
    description = (
        "Format as year - plain number without thousands separator"
    )

    def format_number(self, value: float, opts: Any) -> str:
        return number_to_str(value)
