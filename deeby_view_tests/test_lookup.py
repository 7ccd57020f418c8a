import asyncio

import pytest

from deeby_view.fk import ForeignKeyInfo
from deeby_view.lookup import (
    InvalidLookupChain,
    LookupChainBuilder,
    LookupColumn,
    LookupConfig,
    RejectCode,
)


@pytest.fixture
def chain(customer_fk, country_fk):
    return LookupColumn.chain(
        [(customer_fk, "country_id"), (country_fk, "name")]
    )


class TestLookupColumn:
    """Tests for lookup column chains."""

    def test_chain_shape(self, chain, country_fk):
        """A two-level chain exposes its depth, path, leaf and key."""
        assert chain.depth == 2
        assert chain.path == ["country_id", "name"]
        assert chain.leaf.owning_fk == country_fk
        assert chain.key == (
            ("customers", "country_id"),
            ("countries", "name"),
        )

    def test_name_and_view_column(self, chain):
        """The column name joins the path with arrows."""
        assert chain.name("customer_id") == "customer_id->country_id->name"
        col = chain.to_view_column("customer_id")
        assert col.name == "customer_id->country_id->name"
        assert col.title == "country_id → name"
        assert col.is_lookup
        assert col.fk_column == "customer_id"

    def test_truncated(self, chain):
        """Truncating keeps the leading levels only."""
        short = chain.truncated(1)
        assert short.depth == 1
        assert short.name("customer_id") == "customer_id->country_id"
        assert chain.truncated(5) == chain
        with pytest.raises(InvalidLookupChain):
            chain.truncated(0)

    def test_simple_data_round_trip(self, chain):
        """A chain survives a trip through plain data."""
        data = chain.to_simple_data()
        assert data["nested"]["lookup_column"] == "name"
        assert LookupColumn.from_simple_data(data) == chain

    def test_camel_case_simple_data(self, customer_fk):
        """camelCase keys are accepted when parsing."""
        data = {
            "fk": {
                "columns": ["customer_id"],
                "referencedTable": "customers",
                "referencedColumns": ["id"],
            },
            "lookupColumn": "name",
        }
        entry = LookupColumn.from_simple_data(data)
        assert entry.lookup_column == "name"
        assert entry.owning_fk.referenced_table == "customers"

    def test_nested_key_must_hold_the_column(self, customer_fk, country_fk):
        """A nested level must start from the selected column."""
        with pytest.raises(InvalidLookupChain):
            LookupColumn.chain([(customer_fk, "name"), (country_fk, "name")])

    def test_nested_key_must_belong_to_the_table(self, customer_fk):
        """A nested key must belong to the referenced table."""
        stray = ForeignKeyInfo(
            ("country_id",), "countries", ("id",), table="suppliers"
        )
        with pytest.raises(InvalidLookupChain):
            LookupColumn.chain([(customer_fk, "country_id"), (stray, "name")])

    def test_empty_chain(self, customer_fk):
        """An empty chain or an empty column is refused."""
        with pytest.raises(InvalidLookupChain):
            LookupColumn.chain([])
        with pytest.raises(InvalidLookupChain):
            LookupColumn(owning_fk=customer_fk, lookup_column="")

    def test_depth_limit(self):
        """Chains deeper than the limit are refused."""
        hops = []
        for i in range(9):
            fk = ForeignKeyInfo((f"c{i}",), f"t{i + 1}", ("id",))
            hops.append((fk, f"c{i + 1}"))
        with pytest.raises(InvalidLookupChain):
            LookupColumn.chain(hops)


class TestLookupConfig:
    """Tests for the lookups configured on a view."""

    def test_add_deduplicates(self, chain, customer_fk):
        """Adding the same chain twice keeps one copy."""
        config = LookupConfig()
        assert config.add("customer_id", chain)
        assert not config.add("customer_id", chain.truncated(2))
        assert config.add("customer_id", chain.truncated(1))
        assert len(config) == 2
        assert config.fk_columns() == ["customer_id"]
        assert config.names() == [
            "customer_id->country_id->name",
            "customer_id->country_id",
        ]

    def test_remove(self, chain):
        """Removing by name drops the chain."""
        config = LookupConfig()
        config.add("customer_id", chain)
        assert config.find("customer_id->country_id->name")[1] == chain
        assert config.remove_by_name("customer_id->country_id->name")
        assert not config.remove_by_name("customer_id->country_id->name")
        assert not config
        assert config.fk_columns() == []

    def test_columns(self, chain):
        """Each chain produces one view column."""
        config = LookupConfig()
        config.add("customer_id", chain)
        cols = config.columns("customer_id")
        assert [c.name for c in cols] == ["customer_id->country_id->name"]
        assert config.columns("status") == []

    def test_simple_data(self, chain):
        """The configuration converts to plain data."""
        config = LookupConfig()
        config.add("customer_id", chain)
        other = LookupConfig()
        other.from_simple_data(config.to_simple_data())
        assert list(other) == [("customer_id", chain)]

    def test_invalid_entries_are_skipped(self, chain, caplog):
        """Broken entries in plain data are logged and skipped."""
        data = {
            "customer_id": [
                {"fk": chain.owning_fk.to_simple_data()},
                chain.to_simple_data(),
            ]
        }
        config = LookupConfig()
        config.from_simple_data(data)
        assert list(config) == [("customer_id", chain)]
        assert "Skipping invalid lookup" in caplog.text


class TestLookupChainBuilder:
    """Tests for building a chain one table at a time."""

    def test_build_two_levels(self, source, customer_fk, country_fk, chain):
        """Select, expand and select again to build a nested chain."""

        async def run():
            builder = LookupChainBuilder(
                source=source, fk_column="customer_id", fk=customer_fk
            )
            assert await builder.start() is None
            level = builder.levels[0]
            assert level.table == "customers"
            assert level.columns == ["id", "name", "country_id"]
            assert level.suggested == "name"
            assert level.is_fk("country_id")

            assert builder.select("country_id") is None
            assert await builder.expand() is None
            assert builder.levels[1].table == "countries"
            assert not builder.can_build
            assert builder.select("name") is None
            return builder.build()

        assert asyncio.run(run()) == chain

    def test_rejections(self, source, customer_fk):
        """Invalid changes are refused with a reason."""

        async def run():
            builder = LookupChainBuilder(
                source=source, fk_column="customer_id", fk=customer_fk
            )
            assert builder.select("name").code == RejectCode.NO_LEVEL
            await builder.start()
            assert (await builder.expand()).code == RejectCode.NOTHING_SELECTED
            assert builder.select("nope").code == RejectCode.UNKNOWN_COLUMN
            assert builder.select("name") is None
            rejection = await builder.expand()
            assert rejection.code == RejectCode.NOT_A_FOREIGN_KEY
            assert len(builder.levels) == 1
            with pytest.raises(InvalidLookupChain):
                LookupChainBuilder(
                    source=source, fk_column="customer_id", fk=customer_fk
                ).build()

        asyncio.run(run())

    def test_reselecting_drops_deeper_levels(self, source, customer_fk):
        """Changing an earlier level discards the ones after it."""

        async def run():
            builder = LookupChainBuilder(
                source=source, fk_column="customer_id", fk=customer_fk
            )
            await builder.start()
            builder.select("country_id")
            await builder.expand()
            assert len(builder.levels) == 2
            assert builder.select("name", level=0) is None
            assert len(builder.levels) == 1
            return builder.build()

        result = asyncio.run(run())
        assert result.path == ["name"]

    def test_depth_limit(self, source, customer_fk):
        """Expanding past the maximum depth is refused."""

        async def run():
            builder = LookupChainBuilder(
                source=source,
                fk_column="customer_id",
                fk=customer_fk,
                max_depth=1,
            )
            await builder.start()
            builder.select("country_id")
            return await builder.expand()

        assert asyncio.run(run()).code == RejectCode.TOO_DEEP

    def test_selection_changed_while_loading(self, source, customer_fk):
        """A table that loads after the selection moved is not attached."""

        async def run():
            builder = LookupChainBuilder(
                source=source, fk_column="customer_id", fk=customer_fk
            )
            await builder.start()
            builder.select("country_id")

            gate = asyncio.Event()
            fetch_columns = source.fetch_referenced_columns

            async def slow_columns(column, fk):
                await gate.wait()
                return await fetch_columns(column, fk)

            source.fetch_referenced_columns = slow_columns
            pending = asyncio.ensure_future(builder.expand())
            await asyncio.sleep(0)
            assert builder.select("name", level=0) is None
            gate.set()
            rejection = await pending
            return builder, rejection

        builder, rejection = asyncio.run(run())
        assert rejection.code == RejectCode.STALE
        assert len(builder.levels) == 1
        assert builder.build().path == ["name"]

    def test_restart_while_expanding(self, source, customer_fk):
        """Starting over discards an expansion still in flight."""

        async def run():
            builder = LookupChainBuilder(
                source=source, fk_column="customer_id", fk=customer_fk
            )
            await builder.start()
            builder.select("country_id")

            gate = asyncio.Event()
            fetch_fks = source.fetch_referenced_table_fks

            async def slow_fks(table_name):
                if table_name == "countries":
                    await gate.wait()
                return await fetch_fks(table_name)

            source.fetch_referenced_table_fks = slow_fks
            pending = asyncio.ensure_future(builder.expand())
            await asyncio.sleep(0)
            assert await builder.start() is None
            gate.set()
            return builder, await pending

        builder, rejection = asyncio.run(run())
        assert rejection.code == RejectCode.STALE
        assert [lv.table for lv in builder.levels] == ["customers"]
        assert builder.levels[0].selected is None

    @pytest.mark.parametrize(
        "method", ["fetch_referenced_columns", "fetch_referenced_table_fks"]
    )
    def test_failed_fetch(self, source, customer_fk, method, caplog):
        """A table that cannot be loaded is reported, not raised."""

        async def broken(*args):
            raise RuntimeError("connection lost")

        async def run():
            builder = LookupChainBuilder(
                source=source, fk_column="customer_id", fk=customer_fk
            )
            assert await builder.start() is None
            builder.select("country_id")
            setattr(source, method, broken)
            expanded = await builder.expand()
            restarted = await builder.start()
            return builder, expanded, restarted

        builder, expanded, restarted = asyncio.run(run())
        assert expanded.code == RejectCode.FETCH_FAILED
        assert restarted.code == RejectCode.FETCH_FAILED
        assert len(builder.levels) == 1
        assert builder.levels[0].selected == "country_id"
        assert "connection lost" in caplog.text
