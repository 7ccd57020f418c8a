"""Foreign keys of the browsed tables."""

import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from attrs import define, field
from pydantic import AliasChoices, BaseModel, Field

logger = logging.getLogger(__name__)


def _to_tuple(value: Iterable[str]) -> Tuple[str, ...]:
    return tuple(value)


@define(frozen=True)
class ForeignKeyInfo:
    """A foreign key of a table.

    Multi-column keys map their local columns to the referenced columns
    by position.

    Attributes:
        local_columns: The columns of the table that hold the key.
        referenced_table: The table the key points to.
        referenced_columns: The columns of the referenced table.
        table: The table that owns the key, when known.
    """

    local_columns: Tuple[str, ...] = field(converter=_to_tuple)
    referenced_table: str
    referenced_columns: Tuple[str, ...] = field(converter=_to_tuple)
    table: Optional[str] = field(default=None)

    def __contains__(self, column: str) -> bool:
        return column in self.local_columns

    def referenced_column(self, column: str) -> Optional[str]:
        """The referenced column that corresponds to a local column."""
        return get_referenced_column(column, self)

    def to_simple_data(self) -> Dict[str, Any]:
        return {
            "columns": list(self.local_columns),
            "referenced_table": self.referenced_table,
            "referenced_columns": list(self.referenced_columns),
            "table": self.table,
        }

    @classmethod
    def from_simple_data(cls, data: Any) -> "ForeignKeyInfo":
        if isinstance(data, ForeignKeyInfo):
            return data
        return ForeignKeyData.model_validate(data).to_fk()


class ForeignKeyData(BaseModel):
    """Parser for foreign keys reported by a data source.

    Both the `snake_case` and the `camelCase` spellings of the keys are
    accepted.

    Attributes:
        columns: The local columns of the key.
        referenced_table: The table the key points to.
        referenced_columns: The columns of the referenced table.
        table: The table that owns the key.
    """

    columns: List[str] = Field(
        validation_alias=AliasChoices("columns", "local_columns")
    )
    referenced_table: str = Field(
        validation_alias=AliasChoices("referenced_table", "referencedTable")
    )
    referenced_columns: List[str] = Field(
        validation_alias=AliasChoices(
            "referenced_columns", "referencedColumns"
        )
    )
    table: Optional[str] = None

    def to_fk(self) -> ForeignKeyInfo:
        return ForeignKeyInfo(
            local_columns=self.columns,
            referenced_table=self.referenced_table,
            referenced_columns=self.referenced_columns,
            table=self.table,
        )


def determine_lookup_column(
    columns: Sequence[str], preferred: Optional[str] = None
) -> Optional[str]:
    """Choose the column that best describes a referenced record.

    The preferred column wins if present. Otherwise a column called `name`
    (in any case) is used, then the first column that is not `id`, `uuid`
    or `*_id`, then simply the first column.

    Returns:
        The column or None if there are no columns.
    """
    if not columns:
        return None
    if preferred and preferred in columns:
        return preferred

    for col in columns:
        if col.lower() == "name":
            return col

    for col in columns:
        lower = col.lower()
        if lower not in ("id", "uuid") and not lower.endswith("_id"):
            return col

    return columns[0]


def get_fk_for_column(
    column: str, foreign_keys: Iterable[ForeignKeyInfo]
) -> Optional[ForeignKeyInfo]:
    """The first foreign key that contains a column."""
    for fk in foreign_keys:
        if column in fk.local_columns:
            return fk
    return None


def get_referenced_column(column: str, fk: ForeignKeyInfo) -> Optional[str]:
    """The referenced column at the same position as a local column."""
    try:
        index = fk.local_columns.index(column)
    except ValueError:
        return None
    if index >= len(fk.referenced_columns):
        logger.warning(
            "Foreign key %s -> %s has fewer referenced than local columns",
            fk.local_columns,
            fk.referenced_table,
        )
        return None
    return fk.referenced_columns[index] or None


def parse_foreign_keys(data: Optional[Iterable[Any]]) -> List[ForeignKeyInfo]:
    """Convert the foreign keys reported by a source to `ForeignKeyInfo`."""
    return [ForeignKeyInfo.from_simple_data(d) for d in (data or [])]
