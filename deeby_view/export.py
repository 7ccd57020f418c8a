"""The data handed to export writers.

The view does not write files. It builds an `ExportPayload` and the caller
passes it to the writer of the format the user asked for (CSV, Markdown,
JSON, ...).
"""

from typing import Any, Dict, List, Optional

from attrs import define, field

from deeby_view.constants import ExportMode


@define(frozen=True)
class ExportColumn:
    """A column of an export.

    Attributes:
        name: The name of the column.
        label: The text of the column header.
        declared_type: The type reported by the database; None for lookup
            columns and for formatted exports.
        is_lookup: Whether the column is a derived lookup column.
    """

    name: str
    label: str
    declared_type: Optional[str] = field(default=None)
    is_lookup: bool = field(default=False)


@define
class ExportPayload:
    """The columns and rows to export.

    Attributes:
        mode: `raw` for untouched values of all filtered rows, `formatted`
            for the text shown on the current page.
        columns: The exported columns, in display order.
        rows: One dictionary per row, keyed by column name.
    """

    mode: ExportMode
    columns: List[ExportColumn] = field(factory=list)
    rows: List[Dict[str, Any]] = field(factory=list)

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    def __len__(self) -> int:
        return len(self.rows)

    def as_table(self) -> List[List[Any]]:
        """The rows as lists, in column order."""
        names = self.column_names
        return [[row.get(n) for n in names] for row in self.rows]

    def to_simple_data(self) -> Dict[str, Any]:
        return {
            "mode": self.mode,
            "columns": [
                {
                    "name": c.name,
                    "label": c.label,
                    "declared_type": c.declared_type,
                    "is_lookup": c.is_lookup,
                }
                for c in self.columns
            ],
            "rows": [dict(r) for r in self.rows],
        }
