"""Plain data snapshot of the state of a view.

The engine does not decide where or how views are persisted. It produces a
`ViewState` (which dumps to plain data) and accepts one back. Helpers are
provided for keeping the states in the engine settings file.
"""

import logging
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field, ValidationError, field_validator
from pyrsistent import thaw

from deeby_view.settings import EngineSettings

logger = logging.getLogger(__name__)


class ColumnState(BaseModel):
    order: List[str] = Field(default_factory=list)
    hidden: Optional[List[str]] = None
    widths: Dict[str, float] = Field(default_factory=dict)


class FilterState(BaseModel):
    min: Optional[float] = None
    max: Optional[float] = None
    equals: Optional[Union[bool, int, float, str]] = None
    allow_null: bool = True
    allow_non_null: bool = True


class SortState(BaseModel):
    column: str
    direction: str = "asc"

    @field_validator("direction", mode="before")
    @classmethod
    def validate_direction(cls, v):
        return v if v in ("asc", "desc") else "asc"


class FormatState(BaseModel):
    type: str = "auto"
    options: Dict[str, Any] = Field(default_factory=dict)


class ViewState(BaseModel):
    """The user's choices for one view.

    Attributes:
        columns: Order, visibility and widths of the columns.
        filters: The filter of each filtered column.
        sort: The active sort.
        formats: The formatter chosen for each column.
        lookups: The lookup chains of each foreign key column.
        page: The current page.
        page_size: The number of rows on a page.
    """

    columns: ColumnState = Field(default_factory=ColumnState)
    filters: Dict[str, FilterState] = Field(default_factory=dict)
    sort: Optional[SortState] = None
    formats: Dict[str, FormatState] = Field(default_factory=dict)
    lookups: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)
    page: int = 1
    page_size: Optional[int] = None

    @field_validator("page", mode="before")
    @classmethod
    def validate_page(cls, v):
        try:
            return max(1, int(v))
        except (TypeError, ValueError):
            return 1

    @field_validator("page_size", mode="before")
    @classmethod
    def validate_page_size(cls, v):
        if v is None:
            return None
        try:
            v = int(v)
        except (TypeError, ValueError):
            return None
        return v if v > 0 else None

    def to_simple_data(self) -> Dict[str, Any]:
        return self.model_dump()

    @classmethod
    def from_simple_data(cls, data: Any) -> "ViewState":
        """Parse plain data, falling back to an empty state when invalid."""
        if isinstance(data, ViewState):
            return data
        try:
            return cls.model_validate(data or {})
        except ValidationError as e:
            logger.warning("Ignoring invalid view state: %s", e)
            return cls()


def _settings_key(view_key: str) -> str:
    return "views." + view_key.replace(".", "_")


def store_view_state(
    settings: EngineSettings, view_key: str, state: ViewState
) -> bool:
    """Keep the state of a view in the settings.

    Args:
        settings: The settings to change; the caller saves them.
        view_key: Identifies the view, e.g. `<database>/<table>`.
        state: The state to keep.

    Returns:
        True if the stored state changed.
    """
    return settings.set_setting(
        _settings_key(view_key), state.to_simple_data()
    )


def restore_view_state(
    settings: EngineSettings, view_key: str
) -> Optional[ViewState]:
    """Read the state of a view kept in the settings."""
    data = settings.get_setting(_settings_key(view_key))
    if data is None:
        return None
    return ViewState.from_simple_data(thaw(data))
