"""Lookup columns.

A lookup column shows a value read from the record that a foreign key
points to. The value may itself be a foreign key, in which case the chain
continues into the next table:

```
orders.customer_id -> customers.country_id -> countries.name
```

is described by:

```python
LookupColumn(
    owning_fk=orders_customer_fk,
    lookup_column="country_id",
    nested=LookupColumn(
        owning_fk=customers_country_fk,
        lookup_column="name",
    ),
)
```

and appears in the view as a column called `customer_id->country_id->name`.
"""

import logging
from enum import StrEnum
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple

from attrs import define, evolve, field

from deeby_view.column import ViewColumn
from deeby_view.constants import LOOKUP_SEP, MAX_CHAIN_DEPTH
from deeby_view.fk import (
    ForeignKeyInfo,
    determine_lookup_column,
    get_fk_for_column,
)
from deeby_view.sources import LookupSource

logger = logging.getLogger(__name__)


class InvalidLookupChain(ValueError):
    """A lookup chain that cannot be resolved."""


@define(frozen=True)
class LookupColumn:
    """One hop of a lookup chain and, through `nested`, all the next ones.

    Attributes:
        owning_fk: The foreign key that leads to the record to read from.
        lookup_column: The column of that record to read.
        nested: The next hop, if the value read is itself a foreign key.
            Its key must belong to the table `owning_fk` points to and must
            include `lookup_column`.
    """

    owning_fk: ForeignKeyInfo
    lookup_column: str
    nested: Optional["LookupColumn"] = field(default=None)

    def __attrs_post_init__(self) -> None:
        if not self.lookup_column:
            raise InvalidLookupChain("A lookup column needs a column to read")
        if self.depth > MAX_CHAIN_DEPTH:
            raise InvalidLookupChain(
                f"Lookup chains are limited to {MAX_CHAIN_DEPTH} levels"
            )

        nested = self.nested
        if nested is None:
            return
        if self.lookup_column not in nested.owning_fk.local_columns:
            raise InvalidLookupChain(
                f"Column {self.lookup_column} of "
                f"{self.owning_fk.referenced_table} is not part of the "
                f"foreign key {nested.owning_fk.local_columns}"
            )
        if (
            nested.owning_fk.table is not None
            and nested.owning_fk.table != self.owning_fk.referenced_table
        ):
            raise InvalidLookupChain(
                f"The foreign key of the next level belongs to "
                f"{nested.owning_fk.table}, not to "
                f"{self.owning_fk.referenced_table}"
            )

    @property
    def depth(self) -> int:
        """The number of hops in the chain."""
        return 1 if self.nested is None else 1 + self.nested.depth

    @property
    def path(self) -> List[str]:
        """The columns read at each hop."""
        return [hop.lookup_column for hop in self.hops()]

    @property
    def leaf(self) -> "LookupColumn":
        """The last hop."""
        hop = self
        while hop.nested is not None:
            hop = hop.nested
        return hop

    @property
    def key(self) -> Tuple[Tuple[str, str], ...]:
        """Identifies the chain by the tables it visits and columns it reads.

        Two chains with the same key show the same data.
        """
        return tuple(
            (hop.owning_fk.referenced_table, hop.lookup_column)
            for hop in self.hops()
        )

    def hops(self) -> Iterator["LookupColumn"]:
        hop: Optional[LookupColumn] = self
        while hop is not None:
            yield hop
            hop = hop.nested

    def name(self, fk_column: str) -> str:
        """The name of the derived column, e.g. `customer_id->name`."""
        return LOOKUP_SEP.join([fk_column] + self.path)

    def truncated(self, depth: int) -> "LookupColumn":
        """The same chain limited to its first `depth` hops."""
        if depth < 1:
            raise InvalidLookupChain("A lookup chain has at least one level")
        if depth == 1 or self.nested is None:
            return evolve(self, nested=None)
        return evolve(self, nested=self.nested.truncated(depth - 1))

    def to_view_column(self, fk_column: str) -> ViewColumn:
        """The column that shows the values of this chain."""
        return ViewColumn(
            name=self.name(fk_column),
            label=" → ".join(self.path),
            lookup=self,
            fk_column=fk_column,
        )

    def to_simple_data(self) -> Dict[str, Any]:
        return {
            "fk": self.owning_fk.to_simple_data(),
            "lookup_column": self.lookup_column,
            "nested": (
                self.nested.to_simple_data() if self.nested else None
            ),
        }

    @classmethod
    def from_simple_data(cls, data: Dict[str, Any]) -> "LookupColumn":
        nested = data.get("nested") or data.get("nestedFK")
        return cls(
            owning_fk=ForeignKeyInfo.from_simple_data(data["fk"]),
            lookup_column=data.get("lookup_column") or data["lookupColumn"],
            nested=cls.from_simple_data(nested) if nested else None,
        )

    @classmethod
    def chain(
        cls, hops: Sequence[Tuple[ForeignKeyInfo, str]]
    ) -> "LookupColumn":
        """Build a chain out of `(foreign key, column to read)` pairs.

        Raises:
            InvalidLookupChain: The pairs do not form a valid chain.
        """
        if not hops:
            raise InvalidLookupChain("A lookup chain has at least one level")
        if len(hops) > MAX_CHAIN_DEPTH:
            raise InvalidLookupChain(
                f"Lookup chains are limited to {MAX_CHAIN_DEPTH} levels"
            )
        result: Optional[LookupColumn] = None
        for fk, column in reversed(hops):
            result = cls(owning_fk=fk, lookup_column=column, nested=result)
        assert result is not None
        return result


@define
class LookupConfig:
    """The lookup columns added by the user to a view.

    Attributes:
        _entries: The chains of each foreign key column, in the order in
            which they were added.
    """

    _entries: Dict[str, List[LookupColumn]] = field(factory=dict, repr=False)

    def __iter__(self) -> Iterator[Tuple[str, LookupColumn]]:
        for fk_column, entries in self._entries.items():
            for entry in entries:
                yield fk_column, entry

    def __len__(self) -> int:
        return sum(len(e) for e in self._entries.values())

    def __bool__(self) -> bool:
        return any(self._entries.values())

    def entries(self, fk_column: str) -> List[LookupColumn]:
        return list(self._entries.get(fk_column, []))

    def fk_columns(self) -> List[str]:
        return [k for k, v in self._entries.items() if v]

    def add(self, fk_column: str, entry: LookupColumn) -> bool:
        """Add a chain to a foreign key column.

        Returns:
            False if an equivalent chain was already present.
        """
        entries = self._entries.setdefault(fk_column, [])
        if any(e.key == entry.key for e in entries):
            logger.debug(
                "Lookup %s already configured", entry.name(fk_column)
            )
            return False
        entries.append(entry)
        return True

    def remove(self, fk_column: str, entry: LookupColumn) -> bool:
        """Remove a chain from a foreign key column.

        Returns:
            False if the chain was not present.
        """
        entries = self._entries.get(fk_column, [])
        for i, existing in enumerate(entries):
            if existing.key == entry.key:
                del entries[i]
                if not entries:
                    del self._entries[fk_column]
                return True
        return False

    def remove_by_name(self, name: str) -> bool:
        """Remove the chain that produces a derived column."""
        for fk_column, entry in self:
            if entry.name(fk_column) == name:
                return self.remove(fk_column, entry)
        return False

    def find(self, name: str) -> Optional[Tuple[str, LookupColumn]]:
        for fk_column, entry in self:
            if entry.name(fk_column) == name:
                return fk_column, entry
        return None

    def names(self) -> List[str]:
        return [entry.name(fk_column) for fk_column, entry in self]

    def columns(self, fk_column: str) -> List[ViewColumn]:
        """The derived columns of one foreign key column."""
        return [e.to_view_column(fk_column) for e in self.entries(fk_column)]

    def clear(self) -> None:
        self._entries.clear()

    def to_simple_data(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            fk_column: [e.to_simple_data() for e in entries]
            for fk_column, entries in self._entries.items()
            if entries
        }

    def from_simple_data(self, data: Dict[str, Any]) -> None:
        """Replace the configuration with the one in plain data.

        Chains that are no longer valid are skipped with a warning.
        """
        self._entries = {}
        for fk_column, entries in (data or {}).items():
            if isinstance(entries, dict):
                entries = entries.get("lookup_columns") or entries.get(
                    "lookupColumns", []
                )
            for item in entries:
                try:
                    self.add(fk_column, LookupColumn.from_simple_data(item))
                except (InvalidLookupChain, KeyError, ValueError) as e:
                    logger.warning(
                        "Skipping invalid lookup for %s: %s", fk_column, e
                    )


class RejectCode(StrEnum):
    NO_LEVEL = "no_level"
    UNKNOWN_COLUMN = "unknown_column"
    NOT_A_FOREIGN_KEY = "not_a_foreign_key"
    NOTHING_SELECTED = "nothing_selected"
    TOO_DEEP = "too_deep"
    FETCH_FAILED = "fetch_failed"
    STALE = "stale"


@define(frozen=True)
class ChainRejection:
    """Why a change of a lookup chain under construction was refused.

    Attributes:
        code: The reason, as a code.
        message: The reason, for humans.
    """

    code: RejectCode
    message: str


@define
class LookupLevel:
    """One table visited by a lookup chain under construction.

    Attributes:
        fk: The foreign key that leads to this table.
        via_column: The column whose value follows `fk`.
        columns: The columns of the table.
        fks: The foreign keys of the table.
        selected: The column chosen by the user.
    """

    fk: ForeignKeyInfo
    via_column: str
    columns: List[str] = field(factory=list)
    fks: List[ForeignKeyInfo] = field(factory=list)
    selected: Optional[str] = field(default=None)

    @property
    def table(self) -> str:
        return self.fk.referenced_table

    @property
    def suggested(self) -> Optional[str]:
        """The column that best describes the records of this table."""
        return determine_lookup_column(self.columns)

    def fk_for(self, column: str) -> Optional[ForeignKeyInfo]:
        return get_fk_for_column(column, self.fks)

    def is_fk(self, column: str) -> bool:
        return self.fk_for(column) is not None


@define
class LookupChainBuilder:
    """Builds a lookup chain one table at a time.

    The user starts from a foreign key column, picks a column of the
    referenced table and, if that column is itself a foreign key, may expand
    it to pick a column of the next table.

    Attributes:
        source: Provides the columns and foreign keys of the tables.
        fk_column: The column the chain starts from.
        fk: The foreign key of that column.
        levels: The tables visited so far.
        max_depth: The maximum number of levels.
        generation: Incremented by every change of the chain; a table that
            finishes loading after a change is discarded.
    """

    source: LookupSource
    fk_column: str
    fk: ForeignKeyInfo
    levels: List[LookupLevel] = field(factory=list)
    max_depth: int = field(default=MAX_CHAIN_DEPTH)
    generation: int = field(default=0, init=False)

    async def _load_level(
        self, fk: ForeignKeyInfo, via_column: str
    ) -> Optional[LookupLevel]:
        try:
            columns = await self.source.fetch_referenced_columns(
                via_column, fk
            )
            fks = await self.source.fetch_referenced_table_fks(
                fk.referenced_table
            )
        except Exception:
            logger.exception(
                "Failed to load table %s for the lookup of %s",
                fk.referenced_table,
                via_column,
            )
            return None
        fks = [
            evolve(f, table=fk.referenced_table) if f.table is None else f
            for f in fks
        ]
        return LookupLevel(
            fk=fk, via_column=via_column, columns=list(columns), fks=fks
        )

    async def _fetch_level(
        self, fk: ForeignKeyInfo, via_column: str
    ) -> Tuple[Optional[LookupLevel], Optional[ChainRejection]]:
        # Any change made while the table loads supersedes this request.
        self.generation += 1
        generation = self.generation
        level = await self._load_level(fk, via_column)
        if level is None:
            return None, self._reject(
                RejectCode.FETCH_FAILED,
                f"Could not load table {fk.referenced_table}",
            )
        if generation != self.generation:
            return None, self._reject(
                RejectCode.STALE,
                f"The chain changed while {fk.referenced_table} was loading",
            )
        return level, None

    async def start(self) -> Optional[ChainRejection]:
        """Load the table the starting foreign key points to.

        Returns:
            None on success, the reason otherwise; on failure the levels
            are left as they were.
        """
        level, rejection = await self._fetch_level(self.fk, self.fk_column)
        if level is None:
            return rejection
        self.levels = [level]
        return None

    def _reject(self, code: RejectCode, message: str) -> ChainRejection:
        logger.info("Lookup chain change refused: %s", message)
        return ChainRejection(code=code, message=message)

    def select(
        self, column: str, level: int = -1
    ) -> Optional[ChainRejection]:
        """Choose the column to read at a level.

        Levels after the changed one are discarded.

        Returns:
            None on success, the reason otherwise.
        """
        if not self.levels:
            return self._reject(RejectCode.NO_LEVEL, "The chain is empty")
        try:
            target = self.levels[level]
        except IndexError:
            return self._reject(
                RejectCode.NO_LEVEL, f"There is no level {level}"
            )
        if column not in target.columns:
            return self._reject(
                RejectCode.UNKNOWN_COLUMN,
                f"Table {target.table} has no column {column}",
            )
        index = level if level >= 0 else len(self.levels) + level
        target.selected = column
        del self.levels[index + 1 :]
        self.generation += 1
        return None

    async def expand(self, level: int = -1) -> Optional[ChainRejection]:
        """Follow the selected column of a level into the next table.

        The selected column must be a foreign key of the level's table.
        When it is not, nothing changes and the reason is returned.
        """
        if not self.levels:
            return self._reject(RejectCode.NO_LEVEL, "The chain is empty")
        try:
            target = self.levels[level]
        except IndexError:
            return self._reject(
                RejectCode.NO_LEVEL, f"There is no level {level}"
            )
        if target.selected is None:
            return self._reject(
                RejectCode.NOTHING_SELECTED,
                f"No column of {target.table} was selected",
            )
        next_fk = target.fk_for(target.selected)
        if next_fk is None:
            return self._reject(
                RejectCode.NOT_A_FOREIGN_KEY,
                f"Column {target.selected} is not a foreign key of "
                f"{target.table}",
            )
        index = level if level >= 0 else len(self.levels) + level
        if index + 1 >= self.max_depth:
            return self._reject(
                RejectCode.TOO_DEEP,
                f"Lookup chains are limited to {self.max_depth} levels",
            )

        new_level, rejection = await self._fetch_level(
            next_fk, target.selected
        )
        if new_level is None:
            return rejection
        self.levels[index + 1 :] = [new_level]
        return None

    @property
    def can_build(self) -> bool:
        return bool(self.levels) and all(
            lv.selected is not None for lv in self.levels
        )

    def build(self) -> LookupColumn:
        """Produce the chain of the selected columns.

        Raises:
            InvalidLookupChain: A level has no selected column.
        """
        if not self.can_build:
            raise InvalidLookupChain(
                "Every level of the chain needs a selected column"
            )
        return LookupColumn.chain(
            [(lv.fk, lv.selected) for lv in self.levels]  # type: ignore
        )
