import logging
from typing import Any, Dict, List, Mapping, Optional, Union

from attrs import define, field

from deeby_view.formatters.auto_fmt import AutoFormatter
from deeby_view.formatters.base import (
    CellFormatter,
    FormatResult,
    FormatterConfig,
    RenderedCell,
)
from deeby_view.formatters.commas_fmt import CommasFormatter
from deeby_view.formatters.currency_fmt import CurrencyFormatter
from deeby_view.formatters.date_fmt import DateFormatter
from deeby_view.formatters.enum_fmt import EnumFormatter
from deeby_view.formatters.percent_fmt import PercentFormatter
from deeby_view.formatters.plain_fmt import PlainFormatter
from deeby_view.formatters.scientific_fmt import ScientificFormatter
from deeby_view.formatters.stars_fmt import StarsFormatter
from deeby_view.formatters.suffixes_fmt import SuffixesFormatter
from deeby_view.formatters.units_fmt import UnitsFormatter
from deeby_view.formatters.year_fmt import YearFormatter
from deeby_view.utils import is_null, value_to_str

logger = logging.getLogger(__name__)

ConfigLike = Union[None, str, FormatterConfig, Mapping[str, Any]]


def as_config(config: ConfigLike) -> FormatterConfig:
    if isinstance(config, FormatterConfig):
        return config
    return FormatterConfig.from_simple_data(config)


@define
class FormatterRegistry:
    """Registry for cell formatters.

    A new registry knows all built-in formatters. Formatting through the
    registry never raises: unknown types and failing formatters fall back
    to the string form of the value.

    Attributes:
        _registry: The formatters, keyed by type.
    """

    _registry: Dict[str, CellFormatter] = field(factory=dict, repr=False)

    def __attrs_post_init__(self) -> None:
        for formatter in (
            AutoFormatter(),
            CurrencyFormatter(),
            YearFormatter(),
            CommasFormatter(),
            ScientificFormatter(),
            SuffixesFormatter(),
            PlainFormatter(),
            PercentFormatter(),
            StarsFormatter(),
            DateFormatter(),
            UnitsFormatter(),
            EnumFormatter(),
        ):
            self._registry[formatter.type] = formatter

    def __getitem__(self, key: str) -> CellFormatter:
        return self._registry[key]

    def __contains__(self, key: str) -> bool:
        return key in self._registry

    def register(self, formatter: CellFormatter) -> None:
        """Add a formatter, replacing any formatter with the same type."""
        if formatter.type in self._registry:
            logger.warning(
                "Formatter with type %s already exists. Overwriting.",
                formatter.type,
            )
        self._registry[formatter.type] = formatter

    def get(self, key: str) -> Optional[CellFormatter]:
        return self._registry.get(key, None)

    def get_all(self) -> List[CellFormatter]:
        return list(self._registry.values())

    def types(self) -> List[str]:
        return list(self._registry.keys())

    def has(self, key: str) -> bool:
        return key in self._registry

    def format_value(
        self, value: Any, config: ConfigLike = None
    ) -> FormatResult:
        """Format a value with the formatter of a configuration.

        Args:
            value: The value to format.
            config: The formatter configuration; a bare type name or None
                (the `auto` formatter) are also accepted.

        Returns:
            The text or the suffixed number produced by the formatter. Null
            values give an empty string; an unknown formatter type or a
            formatter that fails gives the string form of the value.
        """
        cfg = as_config(config)
        if is_null(value):
            return ""

        formatter = self._registry.get(cfg.type)
        if formatter is None:
            logger.debug("No formatter of type %s", cfg.type)
            return value_to_str(value)

        try:
            return formatter.format(value, cfg.options)
        except Exception:
            logger.exception(
                "Formatter %s failed to format %r", cfg.type, value
            )
            return value_to_str(value)

    def format_text(self, value: Any, config: ConfigLike = None) -> str:
        """Like `format_value()` but suffixed numbers are flattened."""
        return str(self.format_value(value, config))

    def render_cell(
        self, value: Any, config: ConfigLike = None
    ) -> RenderedCell:
        """Describe how a cell looks.

        Formatters that do not render cells (or decline to render this
        value) produce a plain text cell.
        """
        if is_null(value):
            return RenderedCell.null()

        cfg = as_config(config)
        formatter = self._registry.get(cfg.type)
        if formatter is not None:
            try:
                cell = formatter.render_cell(value, cfg.options)
            except Exception:
                logger.exception(
                    "Formatter %s failed to render %r", cfg.type, value
                )
                cell = None
            if cell is not None:
                return cell
        return RenderedCell(text=self.format_text(value, cfg))


formatter_registry = FormatterRegistry()
