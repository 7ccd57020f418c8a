import logging
import math
from typing import Any, ClassVar, Dict, Mapping, Optional, Type, Union

from attrs import define, field
from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel
from pyrsistent import PMap, pmap, thaw

from deeby_view.constants import FORMATTER_AUTO
from deeby_view.utils import is_nan, is_null, is_number, value_to_str

logger = logging.getLogger(__name__)


@define(frozen=True)
class SuffixedNumber:
    """A number shown as a mantissa and a magnitude suffix.

    Attributes:
        number: The mantissa, already rounded (`1.20`).
        suffix: The magnitude suffix (`M`).
    """

    number: str
    suffix: str

    def __str__(self) -> str:
        return f"{self.number}{self.suffix}"


FormatResult = Union[str, SuffixedNumber]


@define(frozen=True)
class RenderedCell:
    """Presentation-independent description of how a cell looks.

    Attributes:
        text: The text of the cell.
        tooltip: Longer text shown on hover.
        alignment: `left`, `right` or `center`.
        color: The foreground colour (CSS syntax).
        background: The background colour (CSS syntax).
        italic: Whether the text is shown in italics.
        badge: Whether the text is shown inside a coloured badge.
        link: The target of the cell if it is a link.
    """

    text: str
    tooltip: Optional[str] = field(default=None)
    alignment: str = field(default="left")
    color: Optional[str] = field(default=None)
    background: Optional[str] = field(default=None)
    italic: bool = field(default=False)
    badge: bool = field(default=False)
    link: Optional[str] = field(default=None)

    @classmethod
    def null(cls) -> "RenderedCell":
        """The cell of a value that is not set."""
        return cls(
            text="NULL",
            tooltip="The value is not set",
            alignment="center",
            color="#a0a0a0",
            italic=True,
        )


def _to_options(value: Optional[Mapping[str, Any]]) -> PMap:
    if value is None:
        return pmap()
    return value if isinstance(value, PMap) else pmap(value)


@define(frozen=True)
class FormatterConfig:
    """The formatter chosen for a column.

    Attributes:
        type: The type of the formatter; `auto` lets the detector decide.
        options: The options of the formatter.
    """

    type: str = field(default=FORMATTER_AUTO)
    options: PMap = field(factory=pmap, converter=_to_options)

    @property
    def is_auto(self) -> bool:
        return self.type == FORMATTER_AUTO

    def to_simple_data(self) -> Dict[str, Any]:
        return {"type": self.type, "options": thaw(self.options)}

    @classmethod
    def from_simple_data(
        cls, data: Union[None, str, Mapping[str, Any]]
    ) -> "FormatterConfig":
        if data is None:
            return cls()
        if isinstance(data, str):
            return cls(type=data)
        return cls(
            type=data.get("type") or FORMATTER_AUTO,
            options=data.get("options") or {},
        )


class FormatterOptions(BaseModel):
    """Base parser for the options of a formatter.

    Keys are accepted both in `snake_case` and in `camelCase`. Unknown keys
    are ignored.
    """

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    @staticmethod
    def clamp_int(v: Any, default: int, low: int = 0, high: int = 20) -> int:
        """Coerce a value to an integer inside `[low, high]`.

        Values that are not numbers are replaced by the default.
        """
        if v is None or isinstance(v, bool):
            return default
        try:
            num = float(v)
        except (TypeError, ValueError):
            return default
        if math.isnan(num):
            return default
        if math.isinf(num):
            return high if num > 0 else low
        return max(low, min(high, int(num)))

    @staticmethod
    def choice(v: Any, choices: tuple, default: Any) -> Any:
        return v if v in choices else default


class NoOptions(FormatterOptions):
    pass


def format_grouped(value: float, decimals: int, grouping: bool = True) -> str:
    """Fixed-point rendering with an optional thousands separator."""
    if math.isinf(value):
        return "-∞" if value < 0 else "∞"
    text = f"{value:,.{decimals}f}" if grouping else f"{value:.{decimals}f}"
    if text.startswith("-") and float(text.replace(",", "")) == 0:
        text = text[1:]
    return text


def format_trimmed(value: float, max_decimals: int = 2) -> str:
    """Grouped rendering with at most `max_decimals` significant decimals."""
    text = format_grouped(value, max_decimals)
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return text


def to_exponential(value: float, decimals: int) -> str:
    """Exponential notation with an unpadded exponent (`1.23e+5`)."""
    if math.isinf(value) or math.isnan(value):
        return value_to_str(value)
    mantissa, exp = f"{value:.{decimals}e}".split("e")
    exp_num = int(exp)
    return f"{mantissa}e{'+' if exp_num >= 0 else '-'}{abs(exp_num)}"


class CellFormatter:
    """Base class for the formatters that turn a value into display text.

    Subclasses set the class attributes and implement `format_parsed()`;
    they may also implement `render_cell()` when the cell needs more than
    plain text.

    Attributes:
        type: The unique identifier of the formatter.
        display_name: The name shown to the user.
        description: A sentence describing the result.
        options_model: The parser of the options.
    """

    type: ClassVar[str] = ""
    display_name: ClassVar[str] = ""
    description: ClassVar[str] = ""
    options_model: ClassVar[Type[FormatterOptions]] = NoOptions

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.type})"

    def parse_options(
        self, options: Optional[Mapping[str, Any]] = None
    ) -> FormatterOptions:
        """Validate the options, replacing bad values with the defaults."""
        try:
            return self.options_model.model_validate(dict(options or {}))
        except ValidationError as e:
            logger.warning(
                "Invalid options %s for formatter %s: %s",
                options,
                self.type,
                e,
            )
            return self.options_model()

    def get_default_options(self) -> Dict[str, Any]:
        return self.options_model().model_dump()

    def validate_options(
        self, options: Optional[Mapping[str, Any]] = None
    ) -> Dict[str, Any]:
        """Sanitize the options.

        Returns:
            The options with `snake_case` keys, every value within range.
        """
        return self.parse_options(options).model_dump()

    def format(
        self, value: Any, options: Optional[Mapping[str, Any]] = None
    ) -> FormatResult:
        """Format a value for display.

        Null values become an empty string.
        """
        if is_null(value):
            return ""
        return self.format_parsed(value, self.parse_options(options))

    def format_parsed(self, value: Any, opts: Any) -> FormatResult:
        """Format a non-null value with already validated options."""
        raise NotImplementedError

    def can_format(self, value: Any) -> bool:
        return is_number(value) and not is_nan(value)

    def render_cell(
        self, value: Any, options: Optional[Mapping[str, Any]] = None
    ) -> Optional[RenderedCell]:
        """Rich rendering of a cell.

        The default implementation returns None, which makes the caller
        show the text produced by `format()`.
        """
        return None


class NumericFormatter(CellFormatter):
    """Formatter that only changes the look of numbers.

    Anything that is not a number is shown as its string form.
    """

    def format_parsed(self, value: Any, opts: Any) -> FormatResult:
        if not is_number(value) or is_nan(value):
            return value_to_str(value)
        return self.format_number(value, opts)

    def format_number(self, value: float, opts: Any) -> FormatResult:
        raise NotImplementedError

    def render_cell(
        self, value: Any, options: Optional[Mapping[str, Any]] = None
    ) -> Optional[RenderedCell]:
        if is_null(value):
            return RenderedCell.null()
        if not self.can_format(value):
            return None
        return RenderedCell(
            text=str(self.format(value, options)),
            tooltip=value_to_str(value),
            alignment="right",
        )
