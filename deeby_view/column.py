import logging
import math
from typing import (
    TYPE_CHECKING,
    Any,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Set,
)

from attrs import define, field
from pyrsistent import PMap, pmap

from deeby_view.constants import (
    DATA_TYPE_BOOLEAN,
    DATA_TYPE_DATE,
    DATA_TYPE_NUMBER,
    DATA_TYPE_TEXT,
    DATA_TYPE_UNKNOWN,
    DEFAULT_COLUMN_WIDTH,
    MIN_COLUMN_WIDTH,
    DataTypeCategory,
)
from deeby_view.utils import calculate_optimal_column_width

if TYPE_CHECKING:
    from deeby_view.lookup import LookupColumn  # noqa: F401

logger = logging.getLogger(__name__)


def data_type_category(declared_type: Optional[str]) -> DataTypeCategory:
    """Classify a declared database type.

    The checks are ordered: `varchar` is text even though it contains
    `char`, `bigint` is a number, `timestamp` is a date.

    Args:
        declared_type: The type as reported by the database, if any.

    Returns:
        One of the `DATA_TYPE_*` constants.
    """
    if not declared_type:
        return DATA_TYPE_UNKNOWN
    lower = declared_type.lower()

    if any(t in lower for t in ("text", "varchar", "char", "string")):
        return DATA_TYPE_TEXT
    if any(
        t in lower
        for t in (
            "int",
            "numeric",
            "decimal",
            "float",
            "double",
            "real",
            "serial",
        )
    ):
        return DATA_TYPE_NUMBER
    if "date" in lower or "time" in lower:
        return DATA_TYPE_DATE
    if "bool" in lower:
        return DATA_TYPE_BOOLEAN
    return DATA_TYPE_UNKNOWN


@define(frozen=True)
class ViewColumn:
    """A column of the result set being browsed.

    Attributes:
        name: The unique name of the column inside the view.
        label: Optional text shown in the header instead of the name.
        declared_type: The type reported by the database (`integer`,
            `timestamp with time zone`, `mood_enum`, ...).
        lookup: For derived lookup columns, the chain that produces the
            value. None for columns of the result set.
        fk_column: For derived lookup columns, the name of the foreign key
            column the chain starts from.
    """

    name: str
    label: Optional[str] = field(default=None)
    declared_type: Optional[str] = field(default=None)
    lookup: Optional["LookupColumn"] = field(
        default=None, repr=False, eq=False
    )
    fk_column: Optional[str] = field(default=None)

    @property
    def title(self) -> str:
        """The text to show in the header."""
        return self.label or self.name

    @property
    def text_name(self) -> str:
        """Return the name of the column in `Text case`."""
        parts = self.name.split("_")
        parts[0] = parts[0].title()
        return " ".join(parts)

    @property
    def is_lookup(self) -> bool:
        """Tell if this is a derived lookup column."""
        return self.lookup is not None

    @property
    def data_type(self) -> DataTypeCategory:
        """The category of the declared type."""
        return data_type_category(self.declared_type)

    @property
    def is_enum(self) -> bool:
        return "enum" in (self.declared_type or "").lower()


def _to_pmap(value: Mapping[str, Any]) -> PMap:
    return value if isinstance(value, PMap) else pmap(value)


@define(frozen=True)
class ViewRow:
    """An immutable snapshot of one row of the result set.

    Attributes:
        id: A stable identifier of the row inside the view.
        values: The values of the row, keyed by column name.
    """

    id: str
    values: PMap = field(factory=pmap, converter=_to_pmap)

    def __getitem__(self, key: str) -> Any:
        return self.values.get(key)

    def __contains__(self, key: str) -> bool:
        return key in self.values

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        index: int = 0,
        id_column: str = "id",
    ) -> "ViewRow":
        """Create a row out of a plain dictionary.

        Args:
            data: The values of the row.
            index: The position of the row in the result set; used as the
                identifier when the row has no `id_column` value.
            id_column: The column holding the identifier.
        """
        row_id = data.get(id_column)
        return cls(
            id=str(row_id) if row_id is not None else str(index),
            values=data,
        )


def rows_from_dicts(
    data: Iterable[Mapping[str, Any]], id_column: str = "id"
) -> List[ViewRow]:
    """Create a list of rows out of plain dictionaries."""
    return [
        ViewRow.from_dict(d, index=i, id_column=id_column)
        for i, d in enumerate(data)
    ]


@define
class ColumnViewState:
    """Ordering, visibility and widths of the columns of one view.

    The state is owned by a single view session. It stores names, not
    columns, so it survives a refresh of the result set.

    Attributes:
        order: Explicit permutation of column names. Columns that are not
            listed follow the listed ones in their natural order.
        hidden: Names of the hidden columns; None means that all columns
            are visible.
        widths: Width of the columns that were resized by the user.
        default_width: Width of the columns that were never resized.
        min_width: The smallest width a column can be resized to.
    """

    order: List[str] = field(factory=list)
    hidden: Optional[Set[str]] = field(default=None)
    widths: Dict[str, float] = field(factory=dict)
    default_width: float = field(default=DEFAULT_COLUMN_WIDTH)
    min_width: float = field(default=MIN_COLUMN_WIDTH)

    def ordered(self, columns: List[ViewColumn]) -> List[ViewColumn]:
        """Apply the explicit order to a list of columns.

        The sort is stable, so unlisted columns keep their natural order
        after the listed ones.
        """
        if not self.order:
            return list(columns)
        positions = {name: i for i, name in enumerate(self.order)}
        return sorted(
            columns, key=lambda c: positions.get(c.name, math.inf)
        )

    def is_visible(self, name: str) -> bool:
        return self.hidden is None or name not in self.hidden

    def visible(self, columns: List[ViewColumn]) -> List[ViewColumn]:
        """The ordered list of visible columns."""
        return [c for c in self.ordered(columns) if self.is_visible(c.name)]

    def hidden_columns(self, columns: List[ViewColumn]) -> List[ViewColumn]:
        """The columns the user has hidden, in natural order."""
        if self.hidden is None:
            return []
        return [c for c in columns if c.name in self.hidden]

    def toggle_visibility(self, name: str) -> bool:
        """Hide a visible column or show a hidden one.

        Returns:
            True if the column is visible after the call.
        """
        if self.hidden is None:
            self.hidden = {name}
            return False
        if name in self.hidden:
            self.hidden.discard(name)
            if not self.hidden:
                self.hidden = None
            return True
        self.hidden.add(name)
        return False

    def show_all(self) -> None:
        self.hidden = None

    def move(
        self, columns: List[ViewColumn], from_index: int, to_index: int
    ) -> List[str]:
        """Move a column from one position to another.

        The indices refer to the ordered list of all columns (hidden ones
        included). Out of range indices leave the order untouched.

        Returns:
            The new explicit order.
        """
        current = [c.name for c in self.ordered(columns)]
        if not (0 <= from_index < len(current)) or not (
            0 <= to_index < len(current)
        ):
            logger.debug(
                "Ignoring column move %d -> %d with %d columns",
                from_index,
                to_index,
                len(current),
            )
            return self.order
        name = current.pop(from_index)
        current.insert(to_index, name)
        self.order = current
        return self.order

    def width(self, name: str) -> float:
        return self.widths.get(name, self.default_width)

    def set_width(self, name: str, width: float) -> float:
        """Change the width of a column, never below the minimum.

        Returns:
            The width that was stored.
        """
        width = max(self.min_width, width)
        self.widths[name] = width
        return width

    def auto_fit(self, column: ViewColumn, values: Iterable[Any]) -> float:
        """Size a column to fit its header and content."""
        return self.set_width(
            column.name,
            calculate_optimal_column_width(
                column.title, values, default_width=int(self.default_width)
            ),
        )

    def to_simple_data(self) -> Dict[str, Any]:
        """Convert the state to plain data for persistence."""
        return {
            "order": list(self.order),
            "hidden": sorted(self.hidden) if self.hidden is not None else None,
            "widths": dict(self.widths),
        }

    def from_simple_data(self, data: Mapping[str, Any]) -> None:
        """Restore the state from plain data."""
        self.order = list(data.get("order") or [])
        hidden = data.get("hidden")
        self.hidden = set(hidden) if hidden else None
        self.widths = {
            k: max(self.min_width, float(v))
            for k, v in (data.get("widths") or {}).items()
        }
