import pytest

from deeby_view.settings import EngineSettings
from deeby_view.state import (
    SortState,
    ViewState,
    restore_view_state,
    store_view_state,
)


@pytest.fixture
def settings(tmp_path):
    return EngineSettings(path=str(tmp_path / "settings.yaml"))


class TestViewState:
    """Tests for ViewState parsing."""

    def test_defaults(self):
        state = ViewState()
        assert state.page == 1
        assert state.sort is None
        assert state.columns.hidden is None

    def test_lenient_values(self):
        """Bad pages, sizes and directions fall back to defaults."""
        state = ViewState.from_simple_data(
            {"page": "0", "page_size": -5, "sort": {"column": "a"}}
        )
        assert state.page == 1
        assert state.page_size is None
        assert state.sort == SortState(column="a", direction="asc")
        assert SortState(column="a", direction="up").direction == "asc"

    def test_filter_equals_keeps_its_type(self):
        """Equals values are not coerced between types."""
        state = ViewState.from_simple_data(
            {
                "filters": {
                    "a": {"equals": True},
                    "b": {"equals": 42},
                    "c": {"equals": "42"},
                }
            }
        )
        assert state.filters["a"].equals is True
        assert state.filters["b"].equals == 42
        assert state.filters["c"].equals == "42"

    def test_invalid_data(self, caplog):
        """Invalid data gives an empty state and a warning."""
        state = ViewState.from_simple_data({"columns": 3})
        assert state == ViewState()
        assert "Ignoring invalid view state" in caplog.text

    def test_none(self):
        assert ViewState.from_simple_data(None) == ViewState()


class TestStorage:
    """Tests for keeping view states in the settings."""

    def test_store_and_restore(self, settings):
        """A stored state is restored unchanged."""
        state = ViewState.from_simple_data(
            {"page": 3, "columns": {"hidden": ["a"], "widths": {"a": 90}}}
        )
        assert store_view_state(settings, "shop.db/orders", state)
        assert not store_view_state(settings, "shop.db/orders", state)

        restored = restore_view_state(settings, "shop.db/orders")
        assert restored == state
        assert settings.get_setting("views.shop_db/orders.page") == 3

    def test_survives_a_save(self, settings):
        """A stored state is read back from the file."""
        state = ViewState(page=2)
        store_view_state(settings, "orders", state)
        settings.save_settings()
        reloaded = EngineSettings(path=settings.path)
        assert restore_view_state(reloaded, "orders") == state

    def test_missing(self, settings):
        assert restore_view_state(settings, "nothing") is None
