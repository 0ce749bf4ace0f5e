"""
Collaborator contracts consumed by records and record sets.

:class:`~dbobject.record.Record`, :class:`~dbobject.item_set.ItemSet` and
:class:`~dbobject.record_set.RecordSet` only talk to these Protocols. The
package ships PostgreSQL implementations of each (:class:`~dbobject.db_util.DbUtil`,
:class:`~dbobject.table.Table`, :mod:`dbobject.sql`), but any object with the
same shape can be injected instead, which is how the tests drive the core.

Placeholder conventions
-----------------------

- Clauses handed to builders use ``?`` for positional and ``:name`` for named
  bindings.
- :meth:`FieldInterface.to_bound_value` returns its placeholder in the same
  ``?`` form.
- Builders render driver SQL (``%s``) with an ordered bindings list.
"""

from typing import Any, Dict, List, Optional, Protocol, Tuple, Union

Bindings = Union[List[Any], Dict[str, Any]]
Row = Dict[str, Any]


class StatementInterface(Protocol):
    """A prepared statement, executed once and then read row by row."""

    def execute(self, bindings: Optional[Bindings] = None) -> None:
        ...

    def fetch_row(self) -> Optional[Row]:
        """Return the next row as a column -> value dict, or None at the end."""
        ...

    def fetch_all(self) -> List[Row]:
        ...

    def row_count(self) -> int:
        ...

    def close(self) -> None:
        ...


class ConnectionInterface(Protocol):
    """A database handle shared by reference between records and sets."""

    dialect: str

    def prepare(self, sql: str) -> StatementInterface:
        ...

    def begin_transaction(self) -> None:
        ...

    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        ...

    def in_transaction(self) -> bool:
        ...


class FieldInterface(Protocol):
    name: str

    def to_program_value(self, raw: Any) -> Any:
        """Coerce a stored or user supplied value to its program representation."""
        ...

    def to_bound_value(self, value: Any) -> Tuple[str, List[Any]]:
        """Return a ``?`` style placeholder and the values it binds."""
        ...


class TableInterface(Protocol):
    dialect: str

    def field_exists(self, name: str) -> bool:
        ...

    def get_field(self, name: str) -> FieldInterface:
        ...

    def get_fields(self) -> List[FieldInterface]:
        ...

    def get_primary_keys(self) -> List[str]:
        """Primary key field names, in key order."""
        ...

    def get_name(self) -> str:
        ...

    def get_fqn(self) -> str:
        """Schema qualified table name."""
        ...

    def supports_returning(self) -> bool:
        ...
