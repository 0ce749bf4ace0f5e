"""
Result sets built from any query.

An :class:`ItemSet` holds a query definition (a SELECT, WITH or UNION builder,
or raw SQL), runs it, and keeps one item per returned row. Example::

    items = ItemSet(db)
    items.get_sql_select().fields("stringone", "numberone").from_("public.objtest1")
    for item in items.run():
        print(item.get("stringone"))

    items.set_raw_sql("SELECT * FROM public.objtest1 WHERE numberone > :low", {"low": 100})
    total = items.run_for_count()

Reads fail soft: if running the query fails, the error is logged, kept on
:attr:`ItemSet.last_error`, and the set is left as it was. Pass
``raise_errors=True`` (to the constructor or to a single call) to get a
:class:`~dbobject.exceptions.QueryError` instead.
"""

import logging
import operator
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

import pandas as pd
from pydantic import TypeAdapter

from dbobject import sql
from dbobject.exceptions import QueryError
from dbobject.interfaces import ConnectionInterface, Row, StatementInterface
from dbobject.item import Item

logger = logging.getLogger("dbobject.item_set")

_ROWS_ADAPTER = TypeAdapter(List[Dict[str, Any]])


class StatementKind(str, Enum):
    """Which statement :meth:`ItemSet.run` executes."""

    SELECT = "select"
    WITH = "with"
    UNION = "union"
    RAW = "raw"


class RawStatement:
    """Raw SQL text with ``?`` or ``:name`` bindings."""

    def __init__(self, text: str = "", bindings: Any = None):
        self.text = text
        self.bindings = bindings

    def output(self) -> str:
        return sql.bind(self.text, self.bindings)[0]

    def get_bindings(self) -> List[Any]:
        return sql.bind(self.text, self.bindings)[1]


class ItemSet:
    """
    An ordered, index addressable set of items.

    Items are kept under stable integer indices: :meth:`remove` leaves the
    other indices alone. :meth:`reverse` and :meth:`clear` renumber from 0.
    Iterating yields the items; :meth:`items` yields ``(index, item)`` pairs.
    """

    def __init__(self, connection: ConnectionInterface, raise_errors: bool = False):
        self._db = connection
        self._sql_driver = sql.get_driver(connection.dialect)
        self._items: Dict[int, Any] = {}
        self._next_index = 0
        self._position = 0
        # Index order for the cursor, rebuilt after the items change
        self._keys: Optional[List[int]] = None
        self._statements: Dict[StatementKind, Any] = {}
        self._active = StatementKind.SELECT
        self.raise_errors = raise_errors
        self.last_error: Optional[Exception] = None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self._active.value} count={len(self._items)}>"

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Any]:
        return iter(list(self._items.values()))

    def __getitem__(self, index: int) -> Any:
        return self._items[index]

    def __contains__(self, index: int) -> bool:
        return index in self._items

    # Items

    def new_item(self) -> Any:
        """Create the object one fetched row is loaded into."""
        return Item()

    def populate_item(self, item: Any, row: Row) -> Any:
        for field, value in row.items():
            item.set(field, value)
        return item

    def _append(self, item: Any) -> None:
        self._items[self._next_index] = item
        self._next_index += 1
        self._keys = None

    def _index_keys(self) -> List[int]:
        if self._keys is None:
            self._keys = list(self._items)
        return self._keys

    # Statements

    def _use_statement(self, kind: StatementKind, factory: Callable, fresh: bool = False) -> Any:
        if fresh or kind not in self._statements:
            self._statements[kind] = factory()
        self._active = kind
        return self._statements[kind]

    def get_active_statement_kind(self) -> StatementKind:
        return self._active

    def get_sql_select(self) -> sql.Select:
        return self._use_statement(StatementKind.SELECT, self._sql_driver.select)

    def get_new_sql_select(self) -> sql.Select:
        """Replace the SELECT statement with an empty one."""
        return self._use_statement(StatementKind.SELECT, self._sql_driver.select, fresh=True)

    def get_sql_with(self) -> sql.With:
        return self._use_statement(StatementKind.WITH, self._sql_driver.with_)

    def get_new_sql_with(self) -> sql.With:
        return self._use_statement(StatementKind.WITH, self._sql_driver.with_, fresh=True)

    def get_sql_union(self) -> sql.Union:
        return self._use_statement(StatementKind.UNION, self._sql_driver.union)

    def get_new_sql_union(self) -> sql.Union:
        return self._use_statement(StatementKind.UNION, self._sql_driver.union, fresh=True)

    def _raw_statement(self) -> RawStatement:
        if StatementKind.RAW not in self._statements:
            self._statements[StatementKind.RAW] = RawStatement()
        return self._statements[StatementKind.RAW]

    def set_raw_sql(self, text: str, bindings: Any = None) -> "ItemSet":
        """Run ``text`` as is. Existing raw bindings are kept unless new ones are given."""
        raw = self._raw_statement()
        raw.text = text
        if bindings is not None:
            raw.bindings = bindings
        self._active = StatementKind.RAW
        return self

    def set_raw_sql_bindings(self, bindings: Any) -> "ItemSet":
        """Bindings for raw SQL only; ignored by the other statement kinds."""
        self._raw_statement().bindings = bindings
        return self

    def add_raw_sql_binding(self, label: str, value: Any) -> "ItemSet":
        raw = self._raw_statement()
        if not isinstance(raw.bindings, dict):
            raw.bindings = {}
        raw.bindings[label] = value
        return self

    def _execute_active(self) -> Optional[StatementInterface]:
        query = self._statements.get(self._active)
        if query is None:
            logger.debug("No %s statement defined, nothing to run", self._active.value)
            return None
        statement = self._db.prepare(query.output())
        try:
            statement.execute(query.get_bindings())
        except Exception:
            statement.close()
            raise
        return statement

    def _handle_failure(self, error: Exception, raise_errors: Optional[bool]) -> None:
        self.last_error = error
        if self.raise_errors if raise_errors is None else raise_errors:
            raise QueryError(f"Failed to run {self._active.value} statement: {error}") from error
        logger.warning("Error running %s statement: %s", self._active.value, error, exc_info=True)

    def run(self, raise_errors: bool = None) -> "ItemSet":
        """
        Run the active statement and add one item per row.
        Rows are only added once the whole result has been fetched.
        """
        self.last_error = None
        rows: List[Row] = []
        try:
            statement = self._execute_active()
            if statement is None:
                return self
            try:
                row = statement.fetch_row()
                while row is not None:
                    rows.append(row)
                    row = statement.fetch_row()
            finally:
                statement.close()
        except Exception as error:
            self._handle_failure(error, raise_errors)
            return self

        for row in rows:
            self._append(self.populate_item(self.new_item(), row))
        return self

    def run_for_count(self, raise_errors: bool = None) -> int:
        """Run the active statement and return its row count; items are untouched."""
        self.last_error = None
        try:
            statement = self._execute_active()
            if statement is None:
                return 0
            try:
                return statement.row_count()
            finally:
                statement.close()
        except Exception as error:
            self._handle_failure(error, raise_errors)
            return 0

    # Access

    def output(self) -> List[Any]:
        return list(self._items.values())

    def get_data_set(self) -> List[Any]:
        return self.output()

    def items(self) -> List[Tuple[int, Any]]:
        return list(self._items.items())

    def get(self, index: int) -> Optional[Any]:
        return self._items.get(index)

    def has_index(self, index: int) -> bool:
        return index in self._items

    def remove(self, index: int) -> "ItemSet":
        self._items.pop(index, None)
        self._keys = None
        return self

    def clear(self) -> "ItemSet":
        """Empty the set. Nothing is removed from the database."""
        self._items = {}
        self._keys = None
        self._next_index = 0
        self._position = 0
        return self

    def reverse(self) -> "ItemSet":
        self._items = dict(enumerate(reversed(list(self._items.values()))))
        self._keys = None
        self._next_index = len(self._items)
        self._position = 0
        return self

    def count(self) -> int:
        return len(self._items)

    def is_empty(self) -> bool:
        return len(self._items) == 0

    def is_not_empty(self) -> bool:
        return len(self._items) > 0

    def top(self) -> Optional[Any]:
        return self.rewind().current()

    def find(self, field: str, value: Any) -> Optional[Any]:
        for item in self._items.values():
            if item.get(field) == value:
                return item
        return None

    def find_all(self, field: str, value: Any) -> List[Any]:
        return [item for item in self._items.values() if item.get(field) == value]

    def get_field_values(self, field: str) -> List[Any]:
        return [item.get(field) for item in self._items.values()]

    def _extreme(self, field: str, better: Callable[[Any, Any], bool]) -> Optional[Any]:
        if not self._items:
            return None

        chosen, chosen_value = None, None
        for item in self._items.values():
            value = item.get(field)
            if value is None:
                continue
            if chosen is None or better(value, chosen_value):
                chosen, chosen_value = item, value

        if chosen is None:
            # Every value was NULL; fall back to the first item
            return next(iter(self._items.values()))
        return chosen

    def max(self, field: str) -> Optional[Any]:
        """Item with the largest non-NULL ``field``; the first item if all are NULL."""
        return self._extreme(field, operator.gt)

    def min(self, field: str) -> Optional[Any]:
        """Item with the smallest non-NULL ``field``; the first item if all are NULL."""
        return self._extreme(field, operator.lt)

    # Cursor style traversal

    def rewind(self) -> "ItemSet":
        self._position = 0
        return self

    def valid(self) -> bool:
        return self._position < len(self._items)

    def key(self) -> Optional[int]:
        if not self.valid():
            return None
        return self._index_keys()[self._position]

    def current(self) -> Optional[Any]:
        index = self.key()
        return None if index is None else self._items[index]

    def next(self) -> Optional[Any]:
        """Advance the cursor and return the item now under it."""
        self._position += 1
        return self.current()

    # Export

    def json_serialize(self) -> List[Dict[str, Any]]:
        return [item.get_data() for item in self._items.values()]

    def to_json(self) -> str:
        return _ROWS_ADAPTER.dump_json(self.json_serialize()).decode("utf-8")

    def to_dataframe(self) -> pd.DataFrame:
        """One row per item, indexed by item index."""
        return pd.DataFrame(self.json_serialize(), index=list(self._items))

    def get_db(self) -> ConnectionInterface:
        return self._db
