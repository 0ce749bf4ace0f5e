"""
Records: one database row mapped to an object.

A :class:`Record` is bound to a table and a connection and tracks whether it
reflects a stored row (see :class:`LoadStatus`). Values pass through the
table's field codec on the way in and on the way out. Example::

    db = DbUtil()
    table = Table.lookup("objtest1", db_conn=db)

    record = Record(table, db)
    record.set("stringone", "Howdy there").set("numberone", 42)
    new_id = record.save().get_id()

    pulled = Record(table, db).load(new_id)
    if pulled.is_loaded():
        pulled.set("stringone", "Hello there").save()

Subclass :class:`Record` to give a table its own record type; a
:class:`~dbobject.record_set.RecordSet` keeps to one such type.
"""

import copy
import logging
from enum import IntEnum
from typing import Any, Dict, List, Optional

from pydantic import TypeAdapter

from dbobject import sql
from dbobject.exceptions import MissingPrimaryKeyError
from dbobject.interfaces import ConnectionInterface, Row, TableInterface

logger = logging.getLogger("dbobject.record")

# Virtual field name routed to the primary key
ID_ALIAS = "id"

_DATA_ADAPTER = TypeAdapter(Dict[str, Any])


class LoadStatus(IntEnum):
    """Whether a record reflects a row in the database."""

    NOT_LOADED = 0
    LOADED = 1
    NOT_FOUND = 86


class Record:
    """
    One row of a table. Fields that were never set are absent, which is not
    the same as being NULL: only set fields are written on insert.

    Load/save/delete each make one round trip to the connection and let
    driver errors propagate.
    """

    def __init__(self, table: TableInterface, connection: ConnectionInterface):
        self._table = table
        self._db = connection
        self._data: Dict[str, Any] = {}
        self._load_status = LoadStatus.NOT_LOADED

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} {self._table.get_fqn()}"
            f" id={self.get_id()!r} {self._load_status.name}>"
        )

    def _resolve_field(self, field: str) -> Optional[str]:
        if self._table.field_exists(field):
            return field
        if field == ID_ALIAS:
            return self.get_primary_key_field()
        return None

    def get(self, field: str) -> Any:
        """Value of ``field``, or None if it is unset or not in the table."""
        name = self._resolve_field(field)
        if name is None or name not in self._data:
            return None
        return self._table.get_field(name).to_program_value(self._data[name])

    def set(self, field: str, value: Any) -> "Record":
        """Coerce and store ``value``. Fields not in the table are ignored."""
        name = self._resolve_field(field)
        if name is None:
            return self
        self._data[name] = self._table.get_field(name).to_program_value(value)
        return self

    def is_set(self, field: str) -> bool:
        return self.get(field) is not None

    def keys(self) -> List[str]:
        return list(self._data)

    def get_data(self) -> Dict[str, Any]:
        return dict(self._data)

    def count(self) -> int:
        return len(self._data)

    def clear(self) -> "Record":
        """Drop all field values. The load status is left alone."""
        self._data = {}
        return self

    def get_primary_key_field(self) -> Optional[str]:
        keys = self._table.get_primary_keys()
        return keys[0] if keys else None

    def set_id(self, value: Any) -> "Record":
        pk_field = self.get_primary_key_field()
        if pk_field is not None:
            self.set(pk_field, value)
        return self

    def get_id(self) -> Any:
        pk_field = self.get_primary_key_field()
        if pk_field is None:
            return None
        return self.get(pk_field)

    def get_load_status(self) -> LoadStatus:
        return self._load_status

    def is_loaded(self) -> bool:
        return self._load_status == LoadStatus.LOADED

    def is_not_loaded(self) -> bool:
        return self._load_status != LoadStatus.LOADED

    def get_db(self) -> ConnectionInterface:
        return self._db

    def get_table(self) -> TableInterface:
        return self._table

    def get_sql_driver(self) -> sql.PostgreSQL:
        """Builder factory for the table's dialect."""
        return sql.get_driver(self._table.dialect)

    def clone(self) -> "Record":
        """Copy sharing table and connection, with its own field values."""
        duplicate = copy.copy(self)
        duplicate._data = dict(self._data)
        return duplicate

    def load(self, primary_key_value: Any = None) -> "Record":
        """
        Load the row matching the primary key.

        ``primary_key_value`` is used for the first primary key field; any
        other key fields (and the first, when no value is passed) come from
        values already set on this record.

        Raises:
            MissingPrimaryKeyError: The table has no primary key, or a key
                value is missing.
        """
        fqn = self._table.get_fqn()
        primary_keys = self._table.get_primary_keys()
        if not primary_keys:
            raise MissingPrimaryKeyError(fqn, f"Table {fqn} has no primary key. Unable to load")

        key_values = {pk: self.get(pk) for pk in primary_keys}
        if primary_key_value is not None:
            key_values[primary_keys[0]] = primary_key_value
        if any(value is None for value in key_values.values()):
            raise MissingPrimaryKeyError(fqn)

        select = self.get_sql_driver().select().from_(fqn)
        for pk, value in key_values.items():
            placeholder, bindings = self._table.get_field(pk).to_bound_value(value)
            select.where(f"{pk} = {placeholder}", bindings)

        return self._load_with(select)

    def load_from_where(self, where: str, bindings: Any = None) -> "Record":
        """
        Load the first row matching ``where``. Bind values with ``?`` (a
        scalar or a list) or ``:name`` (a dict).
        """
        select = (
            self.get_sql_driver()
            .select()
            .from_(self._table.get_fqn())
            .where(where, bindings)
            .limit(1)
        )
        return self._load_with(select)

    def load_from_row(self, row: Row) -> "Record":
        """Populate from a fetched row and mark the record as loaded."""
        for field, value in row.items():
            self.set(field, value)

        pk_field = self.get_primary_key_field()
        if pk_field is not None and pk_field in row:
            self.set_id(row[pk_field])

        self._load_status = LoadStatus.LOADED
        return self

    def _load_with(self, select: sql.Select) -> "Record":
        statement = self._db.prepare(select.output())
        try:
            statement.execute(select.get_bindings())
            row = statement.fetch_row()
        except Exception as e:
            logger.error("Error in load: %s", e, exc_info=True)
            raise
        finally:
            statement.close()

        if row is None:
            self._data = {}
            self._load_status = LoadStatus.NOT_FOUND
            return self

        return self.load_from_row(row)

    def save(self) -> "Record":
        """
        Update the row if this record is loaded, otherwise insert a new one.
        Check :meth:`get_id` afterward for generated key values.
        """
        if self._load_status != LoadStatus.LOADED:
            if self._insert_record():
                self._load_status = LoadStatus.LOADED
        else:
            self._update_record()
        return self

    def delete(self) -> "Record":
        """
        Delete the loaded row and mark this record as not loaded.
        Does nothing unless the record is loaded and the table has a primary key.
        """
        if self._load_status != LoadStatus.LOADED:
            return self

        primary_keys = self._table.get_primary_keys()
        if not primary_keys:
            return self

        delete = self.get_sql_driver().delete().table(self._table.get_fqn())
        for pk in primary_keys:
            placeholder, bindings = self._table.get_field(pk).to_bound_value(self.get(pk))
            delete.where(f"{pk} = {placeholder}", bindings)

        self._execute(delete, "delete")
        self._load_status = LoadStatus.NOT_LOADED
        return self

    def _insert_record(self) -> bool:
        fqn = self._table.get_fqn()
        primary_keys = self._table.get_primary_keys()

        bound_values = {}
        for field in self._table.get_fields():
            if self.is_set(field.name):
                bound_values[field.name] = field.to_bound_value(self.get(field.name))

        if not bound_values:
            logger.debug("Nothing to insert into %s", fqn)
            return False

        insert = self.get_sql_driver().insert().table(fqn).field_values(bound_values)

        fetch_key = self._table.supports_returning() and bool(primary_keys)
        if fetch_key:
            for pk in primary_keys:
                insert.returning(pk)

        row = self._execute(insert, "insert", fetch_row=fetch_key)
        if row is not None:
            for pk in primary_keys:
                self.set(pk, row.get(pk))
        return True

    def _update_record(self) -> None:
        fqn = self._table.get_fqn()
        primary_keys = self._table.get_primary_keys()

        if not primary_keys:
            logger.debug("Cannot update %s without a primary key", fqn)
            return

        update = self.get_sql_driver().update().table(fqn)
        for name, value in self._data.items():
            # Primary keys are the criteria, not the assignments
            if name in primary_keys or not self._table.field_exists(name):
                continue
            placeholder, bindings = self._table.get_field(name).to_bound_value(value)
            update.field_value(name, placeholder, bindings)

        if not update.has_assignments():
            logger.debug("Nothing to update in %s", fqn)
            return

        for pk in primary_keys:
            placeholder, bindings = self._table.get_field(pk).to_bound_value(self.get(pk))
            update.where(f"{pk} = {placeholder}", bindings)

        self._execute(update, "update")

    def _execute(self, query: Any, action: str, fetch_row: bool = False) -> Optional[Row]:
        statement = self._db.prepare(query.output())
        try:
            statement.execute(query.get_bindings())
            return statement.fetch_row() if fetch_row else None
        except Exception as e:
            logger.error("Error in %s: %s", action, e, exc_info=True)
            raise
        finally:
            statement.close()

    def to_dict(self) -> dict:
        """Return the set fields as a dict."""
        return self.get_data()

    def to_json(self) -> str:
        """Return the set fields as a JSON string."""
        return _DATA_ADAPTER.dump_json(self._data).decode("utf-8")
