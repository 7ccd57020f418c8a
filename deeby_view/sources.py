"""The collaborators the view engine talks to.

The engine owns no storage and no user interface. Records of referenced
tables are obtained through a `LookupSource` and the changes that must be
handled by the owner of the data (sorting, filtering and paging done by the
database) are reported through `ViewCallbacks`.
"""

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from attrs import define, evolve, field

from deeby_view.constants import SortDirection
from deeby_view.fk import ForeignKeyInfo, parse_foreign_keys

logger = logging.getLogger(__name__)

Record = Dict[str, Any]


class LookupSource:
    """Base class for the providers of referenced records.

    Implementations usually run a query against the database the user is
    browsing. All methods are coroutines.
    """

    async def fetch_foreign_record(
        self, fk_column: str, value: Any, fk: ForeignKeyInfo
    ) -> Optional[Record]:
        """Fetch the record a foreign key value points to.

        Args:
            fk_column: The local column that holds the value.
            value: The value of the foreign key.
            fk: The foreign key.

        Returns:
            The record, or None if there is no such record.
        """
        raise NotImplementedError

    async def fetch_referenced_columns(
        self, column: str, fk: ForeignKeyInfo
    ) -> List[str]:
        """List the columns of the table a foreign key points to."""
        raise NotImplementedError

    async def fetch_referenced_table_fks(
        self, table_name: str
    ) -> List[ForeignKeyInfo]:
        """List the foreign keys of a table."""
        raise NotImplementedError


@define
class CallbackLookupSource(LookupSource):
    """A lookup source made of plain coroutine functions.

    Missing functions behave as if nothing was found.

    Attributes:
        record_fn: Implements `fetch_foreign_record()`.
        columns_fn: Implements `fetch_referenced_columns()`.
        fks_fn: Implements `fetch_referenced_table_fks()`; may return plain
            dictionaries instead of `ForeignKeyInfo` instances.
    """

    record_fn: Optional[
        Callable[[str, Any, ForeignKeyInfo], Awaitable[Optional[Record]]]
    ] = field(default=None)
    columns_fn: Optional[
        Callable[[str, ForeignKeyInfo], Awaitable[List[str]]]
    ] = field(default=None)
    fks_fn: Optional[Callable[[str], Awaitable[List[Any]]]] = field(
        default=None
    )

    async def fetch_foreign_record(
        self, fk_column: str, value: Any, fk: ForeignKeyInfo
    ) -> Optional[Record]:
        if self.record_fn is None:
            return None
        return await self.record_fn(fk_column, value, fk)

    async def fetch_referenced_columns(
        self, column: str, fk: ForeignKeyInfo
    ) -> List[str]:
        if self.columns_fn is None:
            return []
        return list(await self.columns_fn(column, fk))

    async def fetch_referenced_table_fks(
        self, table_name: str
    ) -> List[ForeignKeyInfo]:
        if self.fks_fn is None:
            return []
        fks = parse_foreign_keys(await self.fks_fn(table_name))
        return [
            evolve(fk, table=table_name) if fk.table is None else fk
            for fk in fks
        ]


@define
class ViewCallbacks:
    """Functions called when the user changes the sort or the filters.

    When the view sorts and filters the rows itself it calls `on_sort` and
    `on_filter_change`. When the rows are paged by the data source it calls
    `on_sort_external` and `on_filter_external` instead, so that the source
    can run a new query. Filters are reported in their textual form (see
    `deeby_view.filter.filter_expression()`).

    Attributes:
        on_sort: Receives the name of the sorted column.
        on_filter_change: Receives the filter expression.
        on_sort_external: Receives the column and the direction.
        on_filter_external: Receives the filter expression.
        on_page_change: Receives the new page number.
    """

    on_sort: Optional[Callable[[str], Any]] = field(default=None)
    on_filter_change: Optional[Callable[[str], Any]] = field(default=None)
    on_sort_external: Optional[Callable[[str, SortDirection], Any]] = field(
        default=None
    )
    on_filter_external: Optional[Callable[[str], Any]] = field(default=None)
    on_page_change: Optional[Callable[[int], Any]] = field(default=None)

    def sort_changed(
        self, column: str, direction: SortDirection, external: bool
    ) -> None:
        if external:
            if self.on_sort_external is not None:
                self.on_sort_external(column, direction)
        elif self.on_sort is not None:
            self.on_sort(column)

    def filter_changed(self, expression: str, external: bool) -> None:
        logger.debug("Filters changed (external=%s): %s", external, expression)
        if external:
            if self.on_filter_external is not None:
                self.on_filter_external(expression)
        elif self.on_filter_change is not None:
            self.on_filter_change(expression)

    def page_changed(self, page: int) -> None:
        if self.on_page_change is not None:
            self.on_page_change(page)
