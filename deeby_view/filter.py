"""Column filters.

Each column can carry one `FilterSpec`. The specs of all columns are AND-ed
together. For the outside world the active filters are serialized as a
space-separated list of clauses, one per column:

```
price:min(10),max(99.5) status:equals(active),noNull deleted_at:noNonNull
```

The parts of a clause always appear in the order `min`, `max`, `equals`,
`noNull`, `noNonNull` and only when they apply.
"""

import logging
import math
from enum import StrEnum
from typing import (
    Any,
    Dict,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
    Union,
)

from attrs import define, field

from deeby_view.column import ViewColumn, ViewRow
from deeby_view.constants import (
    DATA_TYPE_BOOLEAN,
    DATA_TYPE_NUMBER,
    DataTypeCategory,
)
from deeby_view.utils import (
    is_nan,
    is_null,
    number_to_str,
    to_number,
    value_to_str,
)

logger = logging.getLogger(__name__)

EqualsType = Union[str, int, float, bool]
R = TypeVar("R", bound=ViewRow)


@define(frozen=True)
class FilterSpec:
    """Describes how the rows should be filtered by one of the columns.

    Attributes:
        min: Rows whose numeric value is below this bound are excluded.
        max: Rows whose numeric value is above this bound are excluded.
        equals: Only rows whose value equals this one are kept. The type of
            this value decides how the comparison is made.
        allow_null: Whether rows with a null value are kept.
        allow_non_null: Whether rows with a non-null value are kept.
    """

    min: Optional[float] = field(default=None)
    max: Optional[float] = field(default=None)
    equals: Optional[EqualsType] = field(default=None)
    allow_null: bool = field(default=True)
    allow_non_null: bool = field(default=True)

    @property
    def is_active(self) -> bool:
        """Tell if the spec excludes anything at all.

        A spec without bounds that allows both null and non-null values is
        the same as no filter.
        """
        return (
            self.min is not None
            or self.max is not None
            or self.equals is not None
            or not self.allow_null
            or not self.allow_non_null
        )

    def matches(self, value: Any) -> bool:
        """Check a single value against the spec.

        Values that cannot be read as numbers never satisfy a numeric
        bound; this is never an error.
        """
        if is_null(value):
            return self.allow_null
        if not self.allow_non_null:
            return False

        if self.min is not None:
            num = to_number(value)
            if is_nan(num) or num < self.min:
                return False

        if self.max is not None:
            num = to_number(value)
            if is_nan(num) or num > self.max:
                return False

        if self.equals is not None:
            if isinstance(self.equals, bool):
                # Identity, so 1 does not equal True.
                if value is not self.equals:
                    return False
            elif isinstance(self.equals, (int, float)):
                num = to_number(value)
                if is_nan(num) or num != self.equals:
                    return False
            elif value_to_str(value) != value_to_str(self.equals):
                return False

        return True

    def clause_parts(self) -> List[str]:
        """The parts of the textual clause of this spec."""
        parts = []
        if self.min is not None:
            parts.append(f"min({number_to_str(self.min)})")
        if self.max is not None:
            parts.append(f"max({number_to_str(self.max)})")
        if self.equals is not None:
            parts.append(f"equals({value_to_str(self.equals)})")
        if not self.allow_null:
            parts.append("noNull")
        if not self.allow_non_null:
            parts.append("noNonNull")
        return parts

    def to_simple_data(self) -> Dict[str, Any]:
        return {
            "min": self.min,
            "max": self.max,
            "equals": self.equals,
            "allow_null": self.allow_null,
            "allow_non_null": self.allow_non_null,
        }


def prune_filters(
    filters: Mapping[str, Optional[FilterSpec]],
) -> Dict[str, FilterSpec]:
    """Drop the specs that do not filter anything."""
    return {
        name: spec
        for name, spec in filters.items()
        if spec is not None and spec.is_active
    }


def row_passes(row: ViewRow, filters: Mapping[str, FilterSpec]) -> bool:
    """Tell if a row satisfies every filter."""
    for name, spec in filters.items():
        if not spec.matches(row.get(name)):
            return False
    return True


def apply_filters(
    rows: Sequence[R], filters: Mapping[str, Optional[FilterSpec]]
) -> List[R]:
    """Keep the rows that pass all active filters.

    The relative order of the rows is preserved.

    Args:
        rows: The rows to filter.
        filters: The spec of each filtered column.

    Returns:
        A new list with the rows that passed.
    """
    active = prune_filters(filters)
    if not active:
        return list(rows)
    result = [row for row in rows if row_passes(row, active)]
    logger.debug(
        "Filtered %d rows down to %d using %d column filter(s)",
        len(rows),
        len(result),
        len(active),
    )
    return result


def filter_expression(filters: Mapping[str, Optional[FilterSpec]]) -> str:
    """Serialize the filters to the textual expression.

    Args:
        filters: The spec of each filtered column, in the order the clauses
            should appear.

    Returns:
        The expression; an empty string if no filter is active.
    """
    clauses = []
    for name, spec in filters.items():
        if spec is None:
            continue
        parts = spec.clause_parts()
        if parts:
            clauses.append(f"{name}:{','.join(parts)}")
    return " ".join(clauses)


def filter_from_input(
    category: DataTypeCategory,
    min_text: str = "",
    max_text: str = "",
    equals_text: str = "",
    allow_null: bool = True,
    allow_non_null: bool = True,
) -> FilterSpec:
    """Build a spec out of the text a user typed.

    Number columns get numeric bounds (text that is not a number is
    ignored). Boolean columns compare `equals` by identity with `True` or
    `False`. Every other column compares `equals` as text and has no bounds.

    Args:
        category: The data type category of the column.
        min_text: The text typed for the lower bound.
        max_text: The text typed for the upper bound.
        equals_text: The text typed for the exact value.
        allow_null: Whether null values are kept.
        allow_non_null: Whether non-null values are kept.
    """
    min_v = max_v = None
    equals: Optional[EqualsType] = None

    if category == DATA_TYPE_NUMBER:
        if min_text.strip():
            num = to_number(min_text)
            min_v = None if math.isnan(num) else num
        if max_text.strip():
            num = to_number(max_text)
            max_v = None if math.isnan(num) else num
        if equals_text.strip():
            num = to_number(equals_text)
            equals = None if math.isnan(num) else num
    elif equals_text.strip():
        if category == DATA_TYPE_BOOLEAN:
            equals = equals_text == "true"
        else:
            equals = equals_text

    return FilterSpec(
        min=min_v,
        max=max_v,
        equals=equals,
        allow_null=allow_null,
        allow_non_null=allow_non_null,
    )


class FilterErrCode(StrEnum):
    MISSING_COLON = "missing_colon"
    EMPTY_COLUMN = "empty_column"
    UNKNOWN_PART = "unknown_part"
    UNTERMINATED_PART = "unterminated_part"
    INVALID_NUMBER = "invalid_number"
    DUPLICATE_COLUMN = "duplicate_column"


class FilterExprError(ValueError):
    """A syntax error in a filter expression.

    Attributes:
        code: The error code.
        text: The expression that was parsed.
        offset: The 0-based offset of the error inside the expression.
        value: The offending piece of text.
    """

    code: FilterErrCode
    text: str
    offset: int
    value: Optional[str]

    def __init__(
        self,
        msg: str,
        code: FilterErrCode,
        text: str,
        offset: int,
        value: Optional[str] = None,
    ):
        super().__init__(msg)
        self.code = code
        self.text = text
        self.offset = offset
        self.value = value

    def as_dict(self) -> dict:
        return {
            "code": self.code,
            "text": self.text,
            "offset": self.offset,
            "value": self.value,
        }


def _infer_equals(text: str) -> EqualsType:
    if text in ("true", "false"):
        return text == "true"
    num = to_number(text)
    if not math.isnan(num) and number_to_str(num) == text:
        return num
    return text


def _read_argument(text: str, start: int) -> Tuple[str, int]:
    """Read the argument of a `name(...)` part.

    The argument ends at the first `)` that is followed by `,`, whitespace
    or the end of the text, so values may contain parentheses.

    Returns:
        The argument and the offset right after the closing parenthesis.
    """
    i = start
    while True:
        close = text.find(")", i)
        if close == -1:
            raise FilterExprError(
                f"Unterminated argument starting at {start}",
                FilterErrCode.UNTERMINATED_PART,
                text,
                start,
                text[start:],
            )
        nxt = close + 1
        if nxt >= len(text) or text[nxt] == "," or text[nxt].isspace():
            return text[start:close], nxt
        i = nxt


def parse_filter_expression(
    text: str,
    columns: Optional[Mapping[str, ViewColumn]] = None,
) -> Dict[str, FilterSpec]:
    """Parse the textual expression back into filter specs.

    Args:
        text: The expression, as produced by `filter_expression()`.
        columns: Known columns by name. When a column is known its data type
            decides how the `equals` argument is typed (see
            `filter_from_input()`); otherwise `true`/`false` become booleans,
            canonical numbers become numbers and the rest stays text.

    Returns:
        The spec of each column, in the order of the clauses.

    Raises:
        FilterExprError: The expression is malformed.
    """
    result: Dict[str, FilterSpec] = {}
    pos = 0
    length = len(text)

    while pos < length:
        if text[pos].isspace():
            pos += 1
            continue

        clause_start = pos
        colon = text.find(":", pos)
        space = next(
            (i for i in range(pos, length) if text[i].isspace()), length
        )
        if colon == -1 or colon > space:
            raise FilterExprError(
                f"Clause at {clause_start} has no column separator",
                FilterErrCode.MISSING_COLON,
                text,
                clause_start,
                text[clause_start:space],
            )
        name = text[pos:colon]
        if not name:
            raise FilterExprError(
                f"Clause at {clause_start} has an empty column name",
                FilterErrCode.EMPTY_COLUMN,
                text,
                clause_start,
            )
        if name in result:
            raise FilterExprError(
                f"Column {name} appears twice",
                FilterErrCode.DUPLICATE_COLUMN,
                text,
                clause_start,
                name,
            )
        pos = colon + 1

        raw: Dict[str, Any] = {}
        allow_null = True
        allow_non_null = True
        while pos < length and not text[pos].isspace():
            if text.startswith("noNonNull", pos):
                allow_non_null = False
                pos += len("noNonNull")
            elif text.startswith("noNull", pos):
                allow_null = False
                pos += len("noNull")
            else:
                for part in ("min(", "max(", "equals("):
                    if text.startswith(part, pos):
                        arg, pos = _read_argument(text, pos + len(part))
                        raw[part[:-1]] = (arg, pos)
                        break
                else:
                    end = text.find(",", pos)
                    end = length if end == -1 else end
                    raise FilterExprError(
                        f"Unknown filter part at {pos}",
                        FilterErrCode.UNKNOWN_PART,
                        text,
                        pos,
                        text[pos:end].split()[0] if text[pos:end] else "",
                    )
            if pos < length and text[pos] == ",":
                pos += 1

        bounds: Dict[str, Optional[float]] = {"min": None, "max": None}
        for key in ("min", "max"):
            if key in raw:
                arg, at = raw[key]
                num = to_number(arg)
                if math.isnan(num):
                    raise FilterExprError(
                        f"The {key} bound of {name} is not a number",
                        FilterErrCode.INVALID_NUMBER,
                        text,
                        at,
                        arg,
                    )
                bounds[key] = num

        equals: Optional[EqualsType] = None
        if "equals" in raw:
            arg = raw["equals"][0]
            column = columns.get(name) if columns else None
            if column is None:
                equals = _infer_equals(arg)
            else:
                equals = filter_from_input(
                    column.data_type, equals_text=arg
                ).equals

        result[name] = FilterSpec(
            min=bounds["min"],
            max=bounds["max"],
            equals=equals,
            allow_null=allow_null,
            allow_non_null=allow_non_null,
        )

    return result
