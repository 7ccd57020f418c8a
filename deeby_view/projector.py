import logging
from typing import (
    Any,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Union,
)

from attrs import define, field
from pyrsistent import PMap, pmap, thaw

from deeby_view.column import (
    ColumnViewState,
    ViewColumn,
    ViewRow,
    rows_from_dicts,
)
from deeby_view.constants import FALLBACK_FORMATTER, ExportMode
from deeby_view.export import ExportColumn, ExportPayload
from deeby_view.filter import (
    FilterSpec,
    apply_filters,
    filter_expression,
    prune_filters,
)
from deeby_view.fk import ForeignKeyInfo, get_fk_for_column, parse_foreign_keys
from deeby_view.formatters.auto_fmt import AutoFormatCache
from deeby_view.formatters.base import FormatterConfig, RenderedCell
from deeby_view.formatters.registry import (
    ConfigLike,
    FormatterRegistry,
    as_config,
    formatter_registry,
)
from deeby_view.lookup import LookupChainBuilder, LookupColumn, LookupConfig
from deeby_view.pagination import PaginationCoordinator
from deeby_view.resolver import (
    NOT_FOUND,
    LookupResolver,
    RecordPreview,
)
from deeby_view.settings import EngineSettings
from deeby_view.sort import SortSpec, sort_rows
from deeby_view.sources import LookupSource, ViewCallbacks
from deeby_view.state import (
    FilterState,
    FormatState,
    SortState,
    ViewState,
)
from deeby_view.utils import is_null

logger = logging.getLogger(__name__)

RowsLike = Iterable[Union[ViewRow, Mapping[str, Any]]]


@define(frozen=True)
class ProjectedRow:
    """A row of the current page together with its derived values.

    Attributes:
        row: The row, untouched.
        formatted: The text shown for each active column.
        lookups: The value of each lookup column; `NOT_FOUND` when the
            referenced record could not be obtained, None when it was not
            resolved yet.
    """

    row: ViewRow
    formatted: PMap = field(factory=pmap)
    lookups: PMap = field(factory=pmap)

    @property
    def id(self) -> str:
        return self.row.id

    def raw(self, column: str) -> Any:
        """The value of a column; lookup columns give their resolved value."""
        if column in self.lookups:
            return self.lookups[column]
        return self.row.get(column)

    def text(self, column: str) -> Optional[str]:
        return self.formatted.get(column)


@define(frozen=True)
class Projection:
    """What a view shows after one render cycle.

    Attributes:
        columns: The active columns, in display order.
        rows: The rows of the current page.
        page: The current page.
        total_pages: The number of pages.
        total_rows: The number of rows across all pages.
    """

    columns: List[ViewColumn]
    rows: List[ProjectedRow]
    page: int
    total_pages: int
    total_rows: int

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]


@define
class ViewProjector:
    """The state of one view and the logic that turns it into rows.

    A render cycle (`project()`) goes through these steps:

    1. the active columns are computed from the column order and
       visibility, with lookup columns placed after their foreign key;
    2. the rows are filtered;
    3. the rows are sorted;
    4. the rows of the current page are selected;
    5. each cell of the page is formatted.

    In passthrough mode the data source pages, filters and sorts the rows
    so steps 2 and 3 are skipped and the changes are reported through the
    external callbacks instead.

    Attributes:
        source: Provides the records of referenced tables.
        callbacks: Notified when the sort, the filters or the page change.
        registry: The formatters.
        settings: Engine defaults; optional.
        passthrough: Whether the data source does the paging.
        filtering_enabled: Whether filters are applied by the view.
        sorting_enabled: Whether the view sorts the rows.
        columns: The columns of the result set.
        rows: The rows of the result set (a single page in passthrough
            mode).
        foreign_keys: The foreign keys of the browsed table.
        column_state: Order, visibility and width of the columns.
        filters: The active filter of each column.
        sort: The active sort.
        formats: The formatter chosen by the user for each column.
        lookups: The lookup columns added by the user.
        pagination: The current page.
        auto_formats: The formatters detected for the other columns.
        resolver: Resolves foreign keys to lookup values.
    """

    source: Optional[LookupSource] = field(default=None)
    callbacks: ViewCallbacks = field(factory=ViewCallbacks)
    registry: FormatterRegistry = field(default=formatter_registry)
    settings: Optional[EngineSettings] = field(default=None)
    _passthrough: bool = field(default=False, alias="passthrough")
    filtering_enabled: bool = field(default=True)
    sorting_enabled: bool = field(default=True)

    columns: List[ViewColumn] = field(factory=list)
    rows: List[ViewRow] = field(factory=list)
    foreign_keys: List[ForeignKeyInfo] = field(factory=list)
    column_state: ColumnViewState = field(factory=ColumnViewState)
    filters: Dict[str, FilterSpec] = field(factory=dict)
    sort: Optional[SortSpec] = field(default=None)
    formats: Dict[str, FormatterConfig] = field(factory=dict)
    lookups: LookupConfig = field(factory=LookupConfig)
    pagination: PaginationCoordinator = field(
        factory=PaginationCoordinator
    )
    auto_formats: AutoFormatCache = field(factory=AutoFormatCache)
    resolver: LookupResolver = field(default=None)

    def __attrs_post_init__(self) -> None:
        if self.resolver is None:
            self.resolver = LookupResolver(
                source=self.source or LookupSource()
            )
        self.pagination.passthrough = self._passthrough
        if self.settings is not None:
            self.pagination.page_size = self.settings.page_size
            self.column_state.default_width = (
                self.settings.default_column_width
            )
            self.column_state.min_width = self.settings.min_column_width
            self.auto_formats.suffix_threshold = (
                self.settings.suffix_threshold
            )

    @property
    def passthrough(self) -> bool:
        return self.pagination.passthrough

    @passthrough.setter
    def passthrough(self, value: bool) -> None:
        self._passthrough = value
        self.pagination.passthrough = value
        self.refresh_counts()

    # Data
    # ------------------------------------------------------------------

    def set_data(
        self,
        columns: Sequence[ViewColumn],
        rows: RowsLike,
        total_row_count: Optional[int] = None,
        foreign_keys: Optional[Iterable[Any]] = None,
    ) -> None:
        """Replace the result set.

        The caches of the view are cleared. Column order, visibility,
        widths, filters, formats and lookups are kept since they refer to
        columns by name.

        Args:
            columns: The columns of the result set.
            rows: The rows, as `ViewRow` or as dictionaries.
            total_row_count: The number of rows reported by the data source;
                required in passthrough mode.
            foreign_keys: The foreign keys of the browsed table; when None
                the previous ones are kept.
        """
        self.columns = list(columns)
        self.rows = [
            r if isinstance(r, ViewRow) else ViewRow.from_dict(r, index=i)
            for i, r in enumerate(rows)
        ]
        if foreign_keys is not None:
            self.foreign_keys = parse_foreign_keys(foreign_keys)

        self.auto_formats.clear()
        self.resolver.cache.clear()

        if total_row_count is None:
            total_row_count = len(self.rows)
        self.pagination.update_counts(total_row_count=total_row_count)
        self.refresh_counts()
        logger.debug(
            "View got %d columns and %d rows (total %d)",
            len(self.columns),
            len(self.rows),
            total_row_count,
        )

    def set_rows(self, rows: Iterable[Mapping[str, Any]]) -> None:
        """Replace the rows, keeping the columns."""
        self.set_data(self.columns, rows_from_dicts(rows))

    def column(self, name: str) -> Optional[ViewColumn]:
        for col in self.all_columns():
            if col.name == name:
                return col
        return None

    def fk_for_column(self, name: str) -> Optional[ForeignKeyInfo]:
        return get_fk_for_column(name, self.foreign_keys)

    # Columns
    # ------------------------------------------------------------------

    def all_columns(self) -> List[ViewColumn]:
        """The result set columns with the lookup columns after their key."""
        result = []
        for col in self.columns:
            result.append(col)
            result.extend(self.lookups.columns(col.name))
        return result

    def ordered_columns(self) -> List[ViewColumn]:
        """All the columns in display order, hidden ones included.

        Lookup columns always follow their foreign key column.
        """
        result = []
        for col in self.column_state.ordered(self.columns):
            result.append(col)
            result.extend(self.lookups.columns(col.name))
        return result

    def active_columns(self) -> List[ViewColumn]:
        """The visible columns in display order."""
        return [
            c
            for c in self.ordered_columns()
            if self.column_state.is_visible(c.name)
        ]

    def set_column_order(self, names: Sequence[str]) -> None:
        self.column_state.order = list(names)

    def move_column(self, from_index: int, to_index: int) -> List[str]:
        """Move a column; the indices count hidden columns too."""
        columns = self.ordered_columns()
        self.column_state.order = [c.name for c in columns]
        return self.column_state.move(columns, from_index, to_index)

    def toggle_column_visibility(self, name: str) -> bool:
        return self.column_state.toggle_visibility(name)

    def set_column_width(self, name: str, width: float) -> float:
        """Resize a column; the detected formatters are recomputed."""
        result = self.column_state.set_width(name, width)
        self.auto_formats.clear()
        return result

    def auto_fit_column(self, name: str) -> Optional[float]:
        """Size a column to fit the text shown on the current page."""
        col = self.column(name)
        if col is None:
            return None
        texts = [r.text(name) for r in self.project().rows]
        result = self.column_state.auto_fit(col, texts)
        self.auto_formats.clear()
        return result

    # Filters and sorting
    # ------------------------------------------------------------------

    @property
    def filter_expression(self) -> str:
        return filter_expression(self.filters)

    def _filters_changed(self) -> None:
        self.pagination.page = 1
        self.refresh_counts()
        self.callbacks.filter_changed(
            self.filter_expression, external=self.passthrough
        )

    def apply_column_filter(
        self, name: str, spec: Optional[FilterSpec]
    ) -> str:
        """Set the filter of a column.

        A spec that filters nothing removes the filter of the column.

        Returns:
            The new filter expression.
        """
        if spec is None or not spec.is_active:
            self.filters.pop(name, None)
        else:
            self.filters[name] = spec
        self._filters_changed()
        return self.filter_expression

    def clear_column_filter(self, name: str) -> str:
        return self.apply_column_filter(name, None)

    def clear_filters(self) -> str:
        self.filters.clear()
        self._filters_changed()
        return self.filter_expression

    def sort_by_column(self, name: str) -> SortSpec:
        """React to a click on a column header.

        The first click sorts ascending, the next ones flip the direction.
        """
        self.sort = SortSpec.next_for(self.sort, name)
        self.callbacks.sort_changed(
            name, self.sort.direction, external=self.passthrough
        )
        return self.sort

    # Pages
    # ------------------------------------------------------------------

    def refresh_counts(self) -> None:
        """Recount the rows that pass the filters, keeping the page valid."""
        if not self.passthrough:
            self.pagination.update_counts(row_count=len(self.ordered_rows()))

    def go_to_page(self, page: int) -> bool:
        self.refresh_counts()
        changed = self.pagination.go_to(page)
        if changed:
            self.callbacks.page_changed(self.pagination.page)
        return changed

    def next_page(self) -> bool:
        return self.go_to_page(self.pagination.page + 1)

    def previous_page(self) -> bool:
        return self.go_to_page(self.pagination.page - 1)

    # Formatting
    # ------------------------------------------------------------------

    def set_format(self, name: str, config: ConfigLike) -> FormatterConfig:
        """Choose the formatter of a column.

        The options are validated by the formatter. Choosing `auto`
        is the same as `clear_format()`.
        """
        cfg = as_config(config)
        if cfg.is_auto:
            self.clear_format(name)
            return cfg

        formatter = self.registry.get(cfg.type)
        if formatter is None:
            logger.warning(
                "Column %s uses unknown formatter %s", name, cfg.type
            )
        else:
            cfg = FormatterConfig(
                cfg.type, formatter.validate_options(thaw(cfg.options))
            )
        self.formats[name] = cfg
        return cfg

    def clear_format(self, name: str) -> None:
        self.formats.pop(name, None)

    def column_values(self, name: str) -> List[Any]:
        """The values of a column across all the rows of the view."""
        col = self.column(name)
        if col is not None and col.is_lookup:
            return [self._lookup_value(col, row) for row in self.rows]
        return [row.get(name) for row in self.rows]

    def effective_format(self, name: str) -> FormatterConfig:
        """The formatter used for a column.

        The one chosen by the user or, when there is none, the detected one.
        """
        cfg = self.formats.get(name)
        if cfg is not None:
            return cfg

        col = self.column(name)
        cfg = self.auto_formats.detect(
            name,
            [
                v
                for v in self.column_values(name)
                if v is not NOT_FOUND
            ],
            declared_type=col.declared_type if col else None,
            width=self.column_state.width(name),
        )
        if cfg.is_auto:
            return FormatterConfig(FALLBACK_FORMATTER)
        return cfg

    def _lookup_value(self, col: ViewColumn, row: ViewRow) -> Any:
        assert col.fk_column is not None
        return self.resolver.lookup_value(col.name, row.get(col.fk_column))

    def cell_value(self, row: ViewRow, name: str) -> Any:
        """The raw value of a cell; lookup columns read the lookup cache."""
        col = self.column(name)
        if col is not None and col.is_lookup:
            return self._lookup_value(col, row)
        return row.get(name)

    def format_cell(self, row: ViewRow, name: str) -> str:
        """The text of a cell."""
        value = self.cell_value(row, name)
        if value is NOT_FOUND:
            return ""
        return self.registry.format_text(value, self.effective_format(name))

    def render_cell(self, row: ViewRow, name: str) -> RenderedCell:
        value = self.cell_value(row, name)
        if value is NOT_FOUND:
            return RenderedCell(
                text="Not found",
                tooltip="The referenced record could not be found",
                color="#c04040",
                italic=True,
            )
        return self.registry.render_cell(value, self.effective_format(name))

    # Lookups
    # ------------------------------------------------------------------

    def add_lookup_column(
        self, fk_column: str, entry: LookupColumn
    ) -> Optional[ViewColumn]:
        """Add a lookup column after a foreign key column.

        Returns:
            The new column, or None if the chain does not start from this
            column or an equivalent one is already present.
        """
        if fk_column not in entry.owning_fk.local_columns:
            logger.warning(
                "Lookup %s does not start from column %s",
                entry.name(fk_column),
                fk_column,
            )
            return None
        if not self.lookups.add(fk_column, entry):
            return None
        self.auto_formats.clear()
        return entry.to_view_column(fk_column)

    def remove_lookup_column(self, name: str) -> bool:
        """Remove a lookup column by its name."""
        if not self.lookups.remove_by_name(name):
            return False
        self.formats.pop(name, None)
        self.filters.pop(name, None)
        if self.sort is not None and self.sort.column == name:
            self.sort = None
        self.auto_formats.clear()
        return True

    async def resolve_lookups(self) -> int:
        """Obtain the values of all lookup columns for all rows.

        Returns:
            The number of distinct cells that were resolved.
        """
        if not self.lookups:
            return 0
        count = await self.resolver.resolve_rows(self.rows, self.lookups)
        if count:
            self.auto_formats.clear()
        return count

    def chain_builder(self, fk_column: str) -> Optional[LookupChainBuilder]:
        """Start building a lookup chain from a foreign key column."""
        fk = self.fk_for_column(fk_column)
        if fk is None:
            logger.info("Column %s is not a foreign key", fk_column)
            return None
        builder = LookupChainBuilder(
            source=self.resolver.source, fk_column=fk_column, fk=fk
        )
        if self.settings is not None:
            builder.max_depth = self.settings.max_chain_depth
        return builder

    async def preview(
        self, fk_column: str, value: Any
    ) -> Optional[RecordPreview]:
        """Fetch the record a cell points to, for a preview panel."""
        fk = self.fk_for_column(fk_column)
        if fk is None or is_null(value):
            return None
        return await self.resolver.preview(fk_column, value, fk)

    def dismiss_preview(self) -> None:
        self.resolver.cancel("preview")

    # Render cycle
    # ------------------------------------------------------------------

    def _lookup_columns(self) -> List[ViewColumn]:
        return [c for c in self.all_columns() if c.is_lookup]

    def _row_lookups(
        self, row: ViewRow, lookup_cols: List[ViewColumn]
    ) -> PMap:
        return pmap({c.name: self._lookup_value(c, row) for c in lookup_cols})

    def ordered_rows(self) -> List[ViewRow]:
        """The rows of the view after filtering and sorting.

        In passthrough mode the data source did both so the rows are
        returned unchanged.
        """
        rows = list(self.rows)
        if self.passthrough:
            return rows

        filters = prune_filters(self.filters) if self.filtering_enabled else {}
        sort_by = self.sort if self.sorting_enabled else None
        if not filters and sort_by is None:
            return rows

        lookup_cols = self._lookup_columns()
        if not lookup_cols:
            rows = apply_filters(rows, filters)
            if sort_by is not None:
                rows = sort_rows(rows, sort_by.column, sort_by.direction)
            return rows

        # Filters and the sort may use lookup columns, whose values are
        # not part of the rows.
        originals: Dict[int, ViewRow] = {}
        work: List[ViewRow] = []
        for row in rows:
            values = {
                k: None if v is NOT_FOUND else v
                for k, v in self._row_lookups(row, lookup_cols).items()
            }
            aug = ViewRow(id=row.id, values=row.values.update(values))
            originals[id(aug)] = row
            work.append(aug)
        work = apply_filters(work, filters)
        if sort_by is not None:
            work = sort_rows(work, sort_by.column, sort_by.direction)
        return [originals[id(aug)] for aug in work]

    def project(self) -> Projection:
        """Compute what the view shows."""
        columns = self.active_columns()
        ordered = self.ordered_rows()
        if not self.passthrough:
            self.pagination.update_counts(row_count=len(ordered))
        page_rows = self.pagination.window(ordered)

        configs = {c.name: self.effective_format(c.name) for c in columns}
        lookup_cols = self._lookup_columns()

        result = []
        for row in page_rows:
            lookups = self._row_lookups(row, lookup_cols)
            formatted = {}
            for col in columns:
                if col.is_lookup:
                    value = lookups.get(col.name)
                else:
                    value = row.get(col.name)
                if value is NOT_FOUND:
                    formatted[col.name] = ""
                else:
                    formatted[col.name] = self.registry.format_text(
                        value, configs[col.name]
                    )
            result.append(
                ProjectedRow(
                    row=row, formatted=pmap(formatted), lookups=lookups
                )
            )

        return Projection(
            columns=columns,
            rows=result,
            page=self.pagination.page,
            total_pages=self.pagination.last_page,
            total_rows=self.pagination.total_rows,
        )

    # Export
    # ------------------------------------------------------------------

    def build_export(self, mode: ExportMode = "formatted") -> ExportPayload:
        """Build the data for an export.

        Args:
            mode: `formatted` exports the rows of the current page as they
                are shown; `raw` exports the values of all the rows that
                pass the filters, in sort order.

        Returns:
            The payload to hand to an export writer. Lookup values that
            could not be obtained are exported as None.
        """
        columns = self.active_columns()
        if mode == "formatted":
            export_columns = [
                ExportColumn(
                    name=c.name, label=c.title, is_lookup=c.is_lookup
                )
                for c in columns
            ]
            rows = []
            for p_row in self.project().rows:
                item = {}
                for col in columns:
                    text = p_row.text(col.name)
                    if text is None:
                        text = self.format_cell(p_row.row, col.name)
                    item[col.name] = text
                rows.append(item)
        elif mode == "raw":
            export_columns = [
                ExportColumn(
                    name=c.name,
                    label=c.title,
                    declared_type=c.declared_type,
                    is_lookup=c.is_lookup,
                )
                for c in columns
            ]
            rows = []
            for row in self.ordered_rows():
                item = {}
                for col in columns:
                    value = self.cell_value(row, col.name)
                    item[col.name] = None if value is NOT_FOUND else value
                rows.append(item)
        else:
            raise ValueError(f"Unknown export mode {mode}")

        logger.debug("Exporting %d %s row(s)", len(rows), mode)
        return ExportPayload(mode=mode, columns=export_columns, rows=rows)

    # State
    # ------------------------------------------------------------------

    def view_state(self) -> ViewState:
        """A snapshot of the choices made by the user."""
        return ViewState(
            columns=self.column_state.to_simple_data(),
            filters={
                k: FilterState(**v.to_simple_data())
                for k, v in prune_filters(self.filters).items()
            },
            sort=(
                SortState(
                    column=self.sort.column, direction=self.sort.direction
                )
                if self.sort is not None
                else None
            ),
            formats={
                k: FormatState(type=v.type, options=thaw(v.options))
                for k, v in self.formats.items()
            },
            lookups=self.lookups.to_simple_data(),
            page=self.pagination.page,
            page_size=self.pagination.page_size,
        )

    def load_view_state(self, state: Union[ViewState, Any]) -> None:
        """Restore the choices made by the user.

        Callbacks are not invoked; the caller reloads the data if the view
        is in passthrough mode.
        """
        state = ViewState.from_simple_data(state)
        self.column_state.from_simple_data(state.columns.model_dump())
        self.filters = {
            k: FilterSpec(**v.model_dump()) for k, v in state.filters.items()
        }
        self.sort = (
            SortSpec(column=state.sort.column, direction=state.sort.direction)
            if state.sort is not None
            else None
        )
        self.formats = {}
        for name, fmt in state.formats.items():
            self.set_format(name, fmt.model_dump())
        self.lookups.from_simple_data(state.lookups)
        if state.page_size is not None:
            self.pagination.set_page_size(state.page_size)
        self.pagination.page = state.page
        self.auto_formats.clear()
        self.refresh_counts()
