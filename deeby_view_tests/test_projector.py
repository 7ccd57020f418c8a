import asyncio

import pytest

from deeby_view.column import ViewColumn
from deeby_view.filter import FilterSpec
from deeby_view.lookup import LookupColumn
from deeby_view.projector import ViewProjector
from deeby_view.resolver import NOT_FOUND
from deeby_view.settings import EngineSettings
from deeby_view.sort import SortSpec
from deeby_view.sources import ViewCallbacks

FULL = "customer_id->country_id->name"
SHORT = "customer_id->country_id"


@pytest.fixture
def calls():
    return []


@pytest.fixture
def callbacks(calls):
    return ViewCallbacks(
        on_sort=lambda c: calls.append(("sort", c)),
        on_filter_change=lambda e: calls.append(("filter", e)),
        on_sort_external=lambda c, d: calls.append(("sort_external", c, d)),
        on_filter_external=lambda e: calls.append(("filter_external", e)),
        on_page_change=lambda p: calls.append(("page", p)),
    )


@pytest.fixture
def chain(customer_fk, country_fk):
    return LookupColumn.chain(
        [(customer_fk, "country_id"), (country_fk, "name")]
    )


@pytest.fixture
def projector(source, callbacks, order_columns, order_rows, customer_fk):
    result = ViewProjector(source=source, callbacks=callbacks)
    result.set_data(order_columns, order_rows, foreign_keys=[customer_fk])
    return result


@pytest.fixture
def resolved(projector, chain):
    projector.add_lookup_column("customer_id", chain)
    asyncio.run(projector.resolve_lookups())
    return projector


def ids(projection):
    return [r.id for r in projection.rows]


def texts(projection, column):
    return [r.text(column) for r in projection.rows]


class TestProjection:
    def test_formats_every_cell(self, projector):
        result = projector.project()
        assert result.column_names == ["id", "customer_id", "total", "status"]
        assert texts(result, "total") == [
            "250.50",
            "99.00",
            "",
            "10.00",
            "5.25",
        ]
        assert texts(result, "customer_id") == ["10", "11", "10", "99", ""]
        assert texts(result, "status")[0] == "paid"
        assert result.total_rows == 5
        assert result.page == 1
        assert result.total_pages == 1

    def test_rows_are_untouched(self, projector, order_rows):
        row = projector.project().rows[0]
        assert row.raw("total") == 250.5
        assert dict(row.row.values) == order_rows[0]

    def test_hidden_and_moved_columns(self, projector):
        assert projector.toggle_column_visibility("customer_id") is False
        projector.move_column(3, 0)
        names = projector.project().column_names
        assert names == ["status", "id", "total"]
        assert projector.toggle_column_visibility("customer_id") is True
        assert projector.project().column_names == [
            "status",
            "id",
            "customer_id",
            "total",
        ]


class TestFiltersAndSort:
    def test_filter(self, projector, calls):
        expression = projector.apply_column_filter(
            "status", FilterSpec(equals="open")
        )
        assert expression == "status:equals(open)"
        assert ids(projector.project()) == ["2", "3"]
        assert calls == [("filter", "status:equals(open)")]

    def test_filters_combine(self, projector):
        projector.apply_column_filter("status", FilterSpec(equals="paid"))
        projector.apply_column_filter("total", FilterSpec(min=100))
        assert ids(projector.project()) == ["1"]

    def test_inactive_filter_is_removed(self, projector, calls):
        projector.apply_column_filter("total", FilterSpec(max=50))
        projector.apply_column_filter("total", FilterSpec())
        assert projector.filters == {}
        assert calls[-1] == ("filter", "")
        assert len(projector.project().rows) == 5

    def test_filter_goes_back_to_first_page(self, projector):
        projector.pagination.set_page_size(2)
        projector.go_to_page(3)
        projector.apply_column_filter("total", FilterSpec(min=0))
        assert projector.pagination.page == 1

    def test_sort_toggles(self, projector, calls):
        assert projector.sort_by_column("total") == SortSpec("total", "asc")
        assert ids(projector.project()) == ["5", "4", "2", "1", "3"]
        assert projector.sort_by_column("total") == SortSpec("total", "desc")
        assert ids(projector.project()) == ["1", "2", "4", "5", "3"]
        assert calls == [("sort", "total"), ("sort", "total")]

    def test_disabled_filtering_and_sorting(self, projector):
        projector.filtering_enabled = False
        projector.sorting_enabled = False
        projector.apply_column_filter("status", FilterSpec(equals="open"))
        projector.sort_by_column("total")
        assert ids(projector.project()) == ["1", "2", "3", "4", "5"]


class TestPaging:
    @pytest.fixture
    def big(self, callbacks):
        result = ViewProjector(callbacks=callbacks)
        result.pagination.set_page_size(10)
        result.set_data(
            [ViewColumn(name="id"), ViewColumn(name="n")],
            [{"id": i, "n": i * 2} for i in range(1, 48)],
        )
        return result

    def test_pages(self, big, calls):
        first = big.project()
        assert first.total_pages == 5
        assert len(first.rows) == 10

        assert big.go_to_page(5)
        last = big.project()
        assert len(last.rows) == 7
        assert last.rows[0].id == "41"
        assert calls == [("page", 5)]

    def test_clamping(self, big, calls):
        assert big.go_to_page(6)
        assert big.pagination.page == 5
        assert not big.go_to_page(7)
        assert big.go_to_page(0)
        assert big.pagination.page == 1
        assert calls == [("page", 5), ("page", 1)]

    def test_next_and_previous(self, big):
        assert big.next_page()
        assert big.next_page()
        assert big.previous_page()
        assert big.pagination.page == 2

    def test_filter_shrinks_pages(self, big):
        big.go_to_page(5)
        big.apply_column_filter("n", FilterSpec(max=20))
        result = big.project()
        assert result.total_pages == 1
        assert len(result.rows) == 10


class TestPassthrough:
    @pytest.fixture
    def remote(self, callbacks, order_columns, order_rows):
        result = ViewProjector(callbacks=callbacks, passthrough=True)
        result.pagination.set_page_size(5)
        result.set_data(order_columns, order_rows, total_row_count=47)
        return result

    def test_counts_come_from_the_source(self, remote):
        result = remote.project()
        assert result.total_pages == 10
        assert result.total_rows == 47
        assert len(result.rows) == 5

    def test_changes_are_reported_not_applied(self, remote, calls):
        remote.apply_column_filter("status", FilterSpec(equals="open"))
        remote.sort_by_column("total")
        assert ids(remote.project()) == ["1", "2", "3", "4", "5"]
        assert calls == [
            ("filter_external", "status:equals(open)"),
            ("sort_external", "total", "asc"),
        ]

    def test_page_change(self, remote, calls):
        assert remote.go_to_page(10)
        assert not remote.go_to_page(11)
        assert calls == [("page", 10)]

    def test_mode_switched_after_creation(self, order_columns, order_rows):
        view = ViewProjector()
        view.passthrough = True
        assert view.pagination.passthrough
        view.set_data(order_columns, order_rows, total_row_count=500)
        result = view.project()
        assert result.total_rows == 500
        assert result.total_pages == 10
        assert len(result.rows) == 5

        view.passthrough = False
        assert not view.pagination.passthrough
        result = view.project()
        assert result.total_rows == 5
        assert result.total_pages == 1


class TestFormats:
    def test_user_format_wins(self, projector):
        cfg = projector.set_format("total", {"type": "currency"})
        assert cfg.options["currency_symbol"] == "$"
        assert texts(projector.project(), "total")[0] == "$250.50"

    def test_clear_format(self, projector):
        projector.set_format("total", "year")
        projector.clear_format("total")
        assert projector.effective_format("total").type == "commas"

    def test_auto_is_never_effective(self, projector):
        projector.set_format("total", "auto")
        assert "total" not in projector.formats
        assert not projector.effective_format("total").is_auto

    def test_unknown_formatter_shows_text(self, projector, caplog):
        projector.set_format("total", "sparkline")
        assert "unknown formatter" in caplog.text
        assert texts(projector.project(), "total")[0] == "250.5"

    def test_width_change_redetects(self, projector):
        wide = projector.effective_format("total")
        assert wide.options["decimal_places"] == 2
        projector.set_column_width("total", 60)
        narrow = projector.effective_format("total")
        assert narrow.options["decimal_places"] == 0

    def test_detection_is_stable(self, projector):
        first = projector.effective_format("total")
        projector.project()
        assert projector.effective_format("total") == first

    def test_render_cell(self, projector):
        row = projector.rows[2]
        assert projector.render_cell(row, "total").text == "NULL"
        assert projector.format_cell(projector.rows[0], "id") == "1"

    def test_settings_defaults(self, tmp_path, order_columns, order_rows):
        settings = EngineSettings(path=str(tmp_path / "settings.yaml"))
        settings.set_setting("view.page_size", 2)
        settings.set_setting("view.column.default_width", 60)
        result = ViewProjector(settings=settings)
        result.set_data(order_columns, order_rows)
        assert result.project().total_pages == 3
        cfg = result.effective_format("total")
        assert cfg.options["decimal_places"] == 0


class TestLookups:
    def test_lookup_column_follows_its_key(self, projector, chain):
        col = projector.add_lookup_column("customer_id", chain)
        assert col.name == FULL
        assert projector.project().column_names == [
            "id",
            "customer_id",
            FULL,
            "total",
            "status",
        ]

    def test_duplicates_and_mismatches_are_refused(
        self, projector, chain, caplog
    ):
        assert projector.add_lookup_column("customer_id", chain)
        assert projector.add_lookup_column("customer_id", chain) is None
        assert projector.add_lookup_column("status", chain) is None
        assert "does not start from column status" in caplog.text

    def test_values_before_and_after_resolution(self, projector, chain):
        projector.add_lookup_column("customer_id", chain)
        assert texts(projector.project(), FULL) == [""] * 5

        count = asyncio.run(projector.resolve_lookups())
        assert count == 3

        result = projector.project()
        assert texts(result, FULL) == ["France", "Japan", "France", "", ""]
        assert result.rows[3].lookups[FULL] is NOT_FOUND
        assert result.rows[4].lookups[FULL] is None

    def test_not_found_cell(self, resolved):
        cell = resolved.render_cell(resolved.rows[3], FULL)
        assert cell.text == "Not found"
        assert cell.italic

    def test_truncated_chain(self, projector, chain):
        projector.add_lookup_column("customer_id", chain.truncated(1))
        asyncio.run(projector.resolve_lookups())
        assert texts(projector.project(), SHORT) == ["1", "2", "1", "", ""]

    def test_sort_by_lookup(self, resolved):
        resolved.sort_by_column(FULL)
        assert ids(resolved.project()) == ["1", "3", "2", "4", "5"]

    def test_filter_by_lookup(self, resolved):
        resolved.apply_column_filter(FULL, FilterSpec(equals="Japan"))
        assert ids(resolved.project()) == ["2"]

    def test_remove(self, resolved):
        resolved.sort_by_column(FULL)
        assert resolved.remove_lookup_column(FULL)
        assert resolved.sort is None
        assert FULL not in resolved.project().column_names
        assert not resolved.remove_lookup_column(FULL)

    def test_new_data_clears_the_cache(self, resolved, order_columns):
        generation = resolved.resolver.cache.generation
        resolved.set_data(order_columns, [{"id": 1, "customer_id": 11}])
        assert resolved.resolver.cache.generation == generation + 1
        assert texts(resolved.project(), FULL) == [""]
        asyncio.run(resolved.resolve_lookups())
        assert texts(resolved.project(), FULL) == ["Japan"]

    def test_no_lookups(self, projector):
        assert asyncio.run(projector.resolve_lookups()) == 0

    def test_chain_builder(self, projector):
        assert projector.chain_builder("status") is None
        builder = projector.chain_builder("customer_id")
        assert asyncio.run(builder.start()) is None
        assert builder.levels[0].table == "customers"

    def test_preview(self, projector):
        preview = asyncio.run(projector.preview("customer_id", 10))
        assert preview.record["name"] == "Alice"
        assert asyncio.run(projector.preview("status", "paid")) is None
        assert asyncio.run(projector.preview("customer_id", None)) is None


class TestExport:
    def test_formatted_exports_the_page(self, resolved):
        resolved.pagination.set_page_size(2)
        resolved.go_to_page(2)
        payload = resolved.build_export("formatted")
        assert payload.mode == "formatted"
        assert payload.column_names == [
            "id",
            "customer_id",
            FULL,
            "total",
            "status",
        ]
        assert payload.rows == [
            {
                "id": "3",
                "customer_id": "10",
                FULL: "France",
                "total": "",
                "status": "open",
            },
            {
                "id": "4",
                "customer_id": "99",
                FULL: "",
                "total": "10.00",
                "status": "paid",
            },
        ]
        assert payload.columns[2].label == "country_id → name"
        assert payload.columns[2].is_lookup

    def test_raw_exports_all_filtered_rows(self, resolved):
        resolved.pagination.set_page_size(2)
        resolved.apply_column_filter("status", FilterSpec(equals="void"))
        resolved.apply_column_filter("status", None)
        resolved.sort_by_column("total")
        resolved.sort_by_column("total")
        payload = resolved.build_export("raw")
        assert len(payload) == 5
        assert [r["id"] for r in payload.rows] == [1, 2, 4, 5, 3]
        assert payload.rows[2][FULL] is None
        assert payload.rows[0][FULL] == "France"
        assert payload.rows[0]["total"] == 250.5
        assert payload.columns[3].declared_type == "numeric(10,2)"

    def test_hidden_columns_are_not_exported(self, projector):
        projector.toggle_column_visibility("status")
        payload = projector.build_export("raw")
        assert "status" not in payload.column_names
        assert "status" not in payload.rows[0]

    def test_unknown_mode(self, projector):
        with pytest.raises(ValueError):
            projector.build_export("pdf")


class TestViewState:
    def test_round_trip(
        self, resolved, source, order_columns, order_rows, customer_fk
    ):
        resolved.toggle_column_visibility("status")
        resolved.set_column_width("total", 120)
        resolved.apply_column_filter("total", FilterSpec(min=5))
        resolved.sort_by_column("total")
        resolved.set_format("total", {"type": "currency"})
        state = resolved.view_state()

        other = ViewProjector(source=source)
        other.set_data(order_columns, order_rows, foreign_keys=[customer_fk])
        other.load_view_state(state.to_simple_data())

        assert other.column_state.hidden == {"status"}
        assert other.column_state.width("total") == 120
        assert other.filters == {"total": FilterSpec(min=5)}
        assert other.sort == SortSpec("total", "asc")
        assert other.formats["total"].type == "currency"
        assert other.lookups.names() == [FULL]
        assert other.view_state() == state

    def test_invalid_state_is_ignored(self, projector, caplog):
        projector.load_view_state({"page": 1, "filters": "nope"})
        assert projector.filters == {}
        assert "Ignoring invalid view state" in caplog.text
