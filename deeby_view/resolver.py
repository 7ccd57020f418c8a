import asyncio
import logging
from typing import (
    Any,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Tuple,
    Union,
)

from attrs import define, field

from deeby_view.column import ViewRow
from deeby_view.fk import ForeignKeyInfo
from deeby_view.lookup import LookupColumn, LookupConfig
from deeby_view.sources import LookupSource, Record
from deeby_view.utils import is_null, value_to_str

logger = logging.getLogger(__name__)


class _NotFound:
    """Marks a foreign key value whose record could not be obtained."""

    _instance: Optional["_NotFound"] = None

    def __new__(cls) -> "_NotFound":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "NOT_FOUND"

    def __bool__(self) -> bool:
        return False


NOT_FOUND = _NotFound()

RecordKey = Tuple[str, str, str]
ValueKey = Tuple[str, str]
Resolved = Union[Record, _NotFound]


def record_key(fk_column: str, value: Any, fk: ForeignKeyInfo) -> RecordKey:
    """The key of a referenced record in the cache."""
    return (fk.referenced_table, fk_column, value_to_str(value))


@define
class LookupCache:
    """Records and lookup values already obtained by one view.

    The cache is cleared as a whole when the rows of the view change. A
    fetch that completes after the cache was cleared does not store its
    result.

    Attributes:
        records: Referenced records (or `NOT_FOUND`) by record key.
        values: Lookup values (or `NOT_FOUND`) by `(lookup column name,
            foreign key value)`.
        in_flight: Fetches that were started and did not complete yet.
        generation: Incremented each time the cache is cleared.
    """

    records: Dict[RecordKey, Resolved] = field(factory=dict)
    values: Dict[ValueKey, Any] = field(factory=dict)
    in_flight: Dict[RecordKey, "asyncio.Future[Resolved]"] = field(
        factory=dict, repr=False
    )
    generation: int = field(default=0)

    def clear(self) -> None:
        logger.debug(
            "Clearing lookup cache with %d records and %d values",
            len(self.records),
            len(self.values),
        )
        self.records.clear()
        self.values.clear()
        self.in_flight.clear()
        self.generation += 1

    def lookup_value(self, name: str, value: Any) -> Any:
        """The resolved value of a lookup column for a foreign key value.

        Returns:
            The value, `NOT_FOUND`, or None if it was not resolved yet.
        """
        return self.values.get((name, value_to_str(value)))


@define(frozen=True)
class LookupToken:
    """Identifies a request whose result may become irrelevant.

    Attributes:
        channel: The kind of request (`preview`, ...).
        generation: The number of the request inside its channel.
    """

    channel: str
    generation: int


@define(frozen=True)
class RecordPreview:
    """A referenced record shown in a preview panel.

    Attributes:
        fk_column: The column the user pointed at.
        value: The foreign key value.
        fk: The foreign key.
        record: The record or None if it could not be obtained.
        fks: The foreign keys of the referenced table, so that the columns
            of the record that lead further can be offered for expansion.
    """

    fk_column: str
    value: Any
    fk: ForeignKeyInfo
    record: Optional[Record]
    fks: List[ForeignKeyInfo] = field(factory=list)

    @property
    def found(self) -> bool:
        return self.record is not None


@define
class LookupResolver:
    """Resolves foreign key values to records and lookup values.

    Fetches for the same key that overlap in time share one call to the
    source. Failures are logged and stored as `NOT_FOUND`; they never
    propagate to the caller.

    Attributes:
        source: Provides the records.
        cache: The records and values already obtained.
    """

    source: LookupSource
    cache: LookupCache = field(factory=LookupCache)
    _tokens: Dict[str, int] = field(factory=dict, repr=False)

    async def _fetch(
        self, key: RecordKey, fk_column: str, value: Any, fk: ForeignKeyInfo
    ) -> Resolved:
        generation = self.cache.generation
        result: Resolved
        try:
            record = await self.source.fetch_foreign_record(
                fk_column, value, fk
            )
        except Exception:
            logger.exception(
                "Failed to fetch %s record for %s=%r",
                fk.referenced_table,
                fk_column,
                value,
            )
            result = NOT_FOUND
        else:
            if record is None:
                logger.debug(
                    "No %s record for %s=%r",
                    fk.referenced_table,
                    fk_column,
                    value,
                )
                result = NOT_FOUND
            else:
                result = record

        if self.cache.generation == generation:
            self.cache.records[key] = result
            self.cache.in_flight.pop(key, None)
        return result

    async def fetch_record(
        self, fk_column: str, value: Any, fk: ForeignKeyInfo
    ) -> Resolved:
        """Obtain the record a foreign key value points to.

        Args:
            fk_column: The column that holds the value.
            value: The foreign key value.
            fk: The foreign key.

        Returns:
            The record or `NOT_FOUND`.
        """
        if is_null(value):
            return NOT_FOUND

        key = record_key(fk_column, value, fk)
        cached = self.cache.records.get(key)
        if cached is not None:
            return cached

        pending = self.cache.in_flight.get(key)
        if pending is None:
            pending = asyncio.ensure_future(
                self._fetch(key, fk_column, value, fk)
            )
            self.cache.in_flight[key] = pending
        else:
            logger.debug("Joining pending fetch of %s", key)
        return await asyncio.shield(pending)

    async def resolve_chain(
        self, fk_column: str, entry: LookupColumn, value: Any
    ) -> Any:
        """Walk a lookup chain starting from a foreign key value.

        Each level is fetched after the previous one completed.

        Returns:
            The value read at the last level, or `NOT_FOUND` if a record
            along the way is missing.
        """
        column = fk_column
        hop: Optional[LookupColumn] = entry
        current = value
        while hop is not None:
            record = await self.fetch_record(column, current, hop.owning_fk)
            if record is NOT_FOUND:
                return NOT_FOUND
            current = record.get(hop.lookup_column)  # type: ignore
            if hop.nested is not None and is_null(current):
                return NOT_FOUND
            column = hop.lookup_column
            hop = hop.nested
        return current

    async def resolve_value(
        self, fk_column: str, entry: LookupColumn, value: Any
    ) -> Any:
        """Like `resolve_chain()` but the result is kept in the cache."""
        name = entry.name(fk_column)
        key = (name, value_to_str(value))
        if key in self.cache.values:
            return self.cache.values[key]

        generation = self.cache.generation
        result = await self.resolve_chain(fk_column, entry, value)
        if self.cache.generation == generation:
            self.cache.values[key] = result
        return result

    async def resolve_rows(
        self, rows: Iterable[ViewRow], config: LookupConfig
    ) -> int:
        """Resolve every configured lookup column for every row.

        Distinct cells are resolved concurrently. A failure only affects
        its own cell.

        Returns:
            The number of distinct cells that were resolved.
        """
        todo: Dict[ValueKey, Tuple[str, LookupColumn, Any]] = {}
        for row in rows:
            for fk_column, entry in config:
                value = row.get(fk_column)
                if is_null(value):
                    continue
                key = (entry.name(fk_column), value_to_str(value))
                if key not in self.cache.values and key not in todo:
                    todo[key] = (fk_column, entry, value)

        if not todo:
            return 0
        logger.debug("Resolving %d lookup cell(s)", len(todo))
        await asyncio.gather(
            *(self.resolve_value(*args) for args in todo.values())
        )
        return len(todo)

    def lookup_value(self, name: str, value: Any) -> Any:
        return self.cache.lookup_value(name, value)

    def begin_request(self, channel: str = "default") -> LookupToken:
        """Start a new request, making the previous ones of the channel
        stale.
        """
        generation = self._tokens.get(channel, 0) + 1
        self._tokens[channel] = generation
        return LookupToken(channel=channel, generation=generation)

    def is_current(self, token: LookupToken) -> bool:
        return self._tokens.get(token.channel) == token.generation

    def cancel(self, channel: str = "default") -> None:
        """Make the pending request of a channel stale."""
        self.begin_request(channel)

    def apply_if_current(
        self, token: LookupToken, fn: Callable[..., Any], *args, **kwargs
    ) -> bool:
        """Call a function only if the request is still the current one.

        Returns:
            True if the function was called.
        """
        if not self.is_current(token):
            logger.debug("Dropping stale result of %s", token)
            return False
        fn(*args, **kwargs)
        return True

    async def preview(
        self,
        fk_column: str,
        value: Any,
        fk: ForeignKeyInfo,
        token: Optional[LookupToken] = None,
    ) -> Optional[RecordPreview]:
        """Fetch a referenced record for a preview panel.

        Starting a new preview makes the previous one stale.

        Returns:
            The preview, or None if another preview was requested (or the
            panel was dismissed through `cancel("preview")`) meanwhile.
        """
        if token is None:
            token = self.begin_request("preview")

        record = await self.fetch_record(fk_column, value, fk)
        try:
            fks = await self.source.fetch_referenced_table_fks(
                fk.referenced_table
            )
        except Exception:
            logger.exception(
                "Failed to list the foreign keys of %s", fk.referenced_table
            )
            fks = []

        if not self.is_current(token):
            logger.debug("Preview of %s=%r is stale", fk_column, value)
            return None
        return RecordPreview(
            fk_column=fk_column,
            value=value,
            fk=fk,
            record=None if record is NOT_FOUND else record,  # type: ignore
            fks=list(fks),
        )
