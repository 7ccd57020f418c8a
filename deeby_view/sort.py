import logging
from functools import cmp_to_key
from typing import Any, List, Optional, Sequence, TypeVar

from attrs import define, field

from deeby_view.column import ViewRow
from deeby_view.constants import SortDirection
from deeby_view.utils import is_null, is_number, locale_key

logger = logging.getLogger(__name__)

R = TypeVar("R", bound=ViewRow)


@define(frozen=True)
class SortSpec:
    """The single active sort of a view.

    Attributes:
        column: The name of the column to sort by.
        direction: `asc` or `desc`.
    """

    column: str
    direction: SortDirection = field(default="asc")

    def toggled(self, column: str) -> "SortSpec":
        """The spec that results from clicking a column header.

        Clicking the sorted column flips the direction; clicking another
        column sorts by it in ascending order.
        """
        if column == self.column:
            return SortSpec(
                column=column,
                direction="desc" if self.direction == "asc" else "asc",
            )
        return SortSpec(column=column, direction="asc")

    @staticmethod
    def next_for(current: Optional["SortSpec"], column: str) -> "SortSpec":
        if current is None:
            return SortSpec(column=column, direction="asc")
        return current.toggled(column)


def compare_values(a: Any, b: Any) -> int:
    """Ascending comparison of two non-null values."""
    if is_number(a) and is_number(b):
        if a < b:
            return -1
        if a > b:
            return 1
        return 0
    ka, kb = locale_key(a), locale_key(b)
    if ka < kb:
        return -1
    if ka > kb:
        return 1
    return 0


def sort_rows(
    rows: Sequence[R],
    sort_by: Optional[str],
    direction: SortDirection = "asc",
) -> List[R]:
    """Order the rows by the values of one column.

    The sort is stable. Null values go last in both directions; only the
    comparison of non-null values is reversed for `desc`.

    Args:
        rows: The rows to sort.
        sort_by: The column to sort by; None leaves the order unchanged.
        direction: `asc` or `desc`.

    Returns:
        A new list with the sorted rows.
    """
    if not sort_by:
        return list(rows)

    sign = -1 if direction == "desc" else 1

    def cmp(ra: R, rb: R) -> int:
        a = ra.get(sort_by)
        b = rb.get(sort_by)
        a_null = is_null(a)
        b_null = is_null(b)
        if a_null and b_null:
            return 0
        if a_null:
            return 1
        if b_null:
            return -1
        return sign * compare_values(a, b)

    logger.debug(
        "Sorting %d rows by %s (%s)", len(rows), sort_by, direction
    )
    return sorted(rows, key=cmp_to_key(cmp))
