from deeby_view.column import (  # noqa: F401
    ColumnViewState,
    ViewColumn,
    ViewRow,
    data_type_category,
    rows_from_dicts,
)
from deeby_view.constants import (  # noqa: F401
    DATA_TYPE_BOOLEAN,
    DATA_TYPE_DATE,
    DATA_TYPE_NUMBER,
    DATA_TYPE_TEXT,
    DATA_TYPE_UNKNOWN,
    LOOKUP_SEP,
    ExportMode,
    SortDirection,
)
from deeby_view.export import ExportColumn, ExportPayload  # noqa: F401
from deeby_view.filter import (  # noqa: F401
    FilterErrCode,
    FilterExprError,
    FilterSpec,
    apply_filters,
    filter_expression,
    filter_from_input,
    parse_filter_expression,
)
from deeby_view.fk import (  # noqa: F401
    ForeignKeyInfo,
    determine_lookup_column,
    get_fk_for_column,
    get_referenced_column,
    parse_foreign_keys,
)
from deeby_view.formatters.auto_fmt import (  # noqa: F401
    AutoFormatCache,
    detect_formatter,
)
from deeby_view.formatters.base import (  # noqa: F401
    CellFormatter,
    FormatterConfig,
    RenderedCell,
)
from deeby_view.formatters.registry import (  # noqa: F401
    FormatterRegistry,
    formatter_registry,
)
from deeby_view.lookup import (  # noqa: F401
    ChainRejection,
    InvalidLookupChain,
    LookupChainBuilder,
    LookupColumn,
    LookupConfig,
    RejectCode,
)
from deeby_view.pagination import PaginationCoordinator  # noqa: F401
from deeby_view.projector import (  # noqa: F401
    ProjectedRow,
    Projection,
    ViewProjector,
)
from deeby_view.resolver import (  # noqa: F401
    NOT_FOUND,
    LookupResolver,
    LookupToken,
    RecordPreview,
)
from deeby_view.settings import EngineSettings  # noqa: F401
from deeby_view.sort import SortSpec, sort_rows  # noqa: F401
from deeby_view.sources import (  # noqa: F401
    CallbackLookupSource,
    LookupSource,
    ViewCallbacks,
)
from deeby_view.state import (  # noqa: F401
    ViewState,
    restore_view_state,
    store_view_state,
)
