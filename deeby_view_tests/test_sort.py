import pytest

from deeby_view.column import rows_from_dicts
from deeby_view.sort import SortSpec, compare_values, sort_rows


@pytest.fixture
def rows():
    return rows_from_dicts(
        [
            {"id": 1, "n": 3, "s": "banana"},
            {"id": 2, "n": None, "s": "Apple"},
            {"id": 3, "n": 1, "s": None},
            {"id": 4, "n": 3, "s": "éclair"},
            {"id": 5, "n": 2, "s": "apple"},
        ]
    )


def ids(rows):
    return [r.id for r in rows]


class TestSortSpec:
    def test_first_click_sorts_ascending(self):
        assert SortSpec.next_for(None, "n") == SortSpec("n", "asc")

    def test_same_column_flips(self):
        spec = SortSpec("n", "asc")
        assert spec.toggled("n") == SortSpec("n", "desc")
        assert spec.toggled("n").toggled("n") == SortSpec("n", "asc")

    def test_other_column_restarts(self):
        assert SortSpec("n", "desc").toggled("s") == SortSpec("s", "asc")


class TestSortRows:
    def test_no_column_keeps_order(self, rows):
        assert ids(sort_rows(rows, None)) == ["1", "2", "3", "4", "5"]

    def test_ascending_numbers_are_stable(self, rows):
        assert ids(sort_rows(rows, "n")) == ["3", "5", "1", "4", "2"]

    def test_descending_keeps_nulls_last(self, rows):
        assert ids(sort_rows(rows, "n", "desc")) == ["1", "4", "5", "3", "2"]

    def test_strings_use_locale_order(self, rows):
        result = sort_rows(rows, "s")
        assert [r["s"] for r in result] == [
            "Apple",
            "apple",
            "banana",
            "éclair",
            None,
        ]

    def test_input_is_not_changed(self, rows):
        before = ids(rows)
        sort_rows(rows, "n", "desc")
        assert ids(rows) == before


def test_compare_values_mixed_types():
    assert compare_values(2, 10) == -1
    assert compare_values("2", "10") == 1
    assert compare_values(1.5, 1.5) == 0
