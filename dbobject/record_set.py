"""
Sets of records of a single type.

A :class:`RecordSet` is built from a sample record. It selects from the
sample's table, clones the sample once per fetched row, and can save or delete
all of its records in one transaction. Example::

    records = RecordSet(ObjTest1(db))
    records.add_filter("stringtwo = ?", "ABCD").add_order("sometext").run()
    first = records.top()

    records.add_filter_named_bindings(
        "stringone = :str1 and stringtwo = :str2",
        {":str1": "Something to say", ":str2": "G2345"},
    )

Only SELECT statements are supported: WITH, UNION and raw SQL cannot promise
rows shaped like the sample's table.
"""

import logging
from typing import Any, List, Optional, Union

from dbobject import sql
from dbobject.exceptions import MissingPrimaryKeyError, RecordTypeError, StatementKindError
from dbobject.interfaces import Row
from dbobject.item_set import ItemSet
from dbobject.record import Record

logger = logging.getLogger("dbobject.record_set")


class RecordSet(ItemSet):
    def __init__(self, sample_item: Record, raise_errors: bool = False):
        super().__init__(sample_item.get_db(), raise_errors=raise_errors)
        self._sample_item = sample_item
        self.get_sql_select().from_(sample_item.get_table().get_fqn())

    def get_sample_item(self) -> Record:
        return self._sample_item

    def new_item(self) -> Record:
        return self._sample_item.clone()

    def populate_item(self, item: Record, row: Row) -> Record:
        return item.load_from_row(row)

    def add(self, record: Record) -> "RecordSet":
        """
        Add a record to the set. It must be of exactly the sample's type.

        Raises:
            RecordTypeError: The record is of another type.
        """
        if type(record) is not type(self._sample_item):
            raise RecordTypeError(type(self._sample_item), type(record))
        self._append(record)
        return self

    # Query building

    def get_new_sql_select(self) -> sql.Select:
        select = super().get_new_sql_select()
        select.from_(self._sample_item.get_table().get_fqn())
        return select

    def add_filter(self, where: str, bindings: Any = None) -> "RecordSet":
        """Add a WHERE condition; conditions are combined with AND."""
        self.get_sql_select().where(where, bindings)
        return self

    def add_filter_named_bindings(self, where: str, bindings: dict) -> "RecordSet":
        self.get_sql_select().where(where, dict(bindings))
        return self

    def add_value_in_filter(self, field: str, values: List[Any]) -> "RecordSet":
        self.get_sql_select().where_in(field, values)
        return self

    def add_value_in_sql(
        self, field: str, subquery: Union[sql.Select, str], bindings: Any = None
    ) -> "RecordSet":
        """Filter ``field`` on the values returned by a sub-query."""
        self.get_sql_select().where_in_sub(field, subquery, bindings)
        return self

    def add_record_filter(self, record: Record, key_field: str = None) -> "RecordSet":
        """
        Filter on ``record``'s primary key value, matched against ``key_field``
        of this set's table (defaults to ``record``'s primary key field name).
        """
        field = key_field or record.get_primary_key_field()
        if field is None:
            raise MissingPrimaryKeyError(record.get_table().get_fqn())
        self.get_sql_select().where(f"{field} = ?", [record.get_id()])
        return self

    def clear_filter(self) -> "RecordSet":
        self.get_sql_select().clear_where()
        return self

    def add_order(self, field: str, direction: str = None) -> "RecordSet":
        self.get_sql_select().order(field, direction)
        return self

    def clear_order(self) -> "RecordSet":
        self.get_sql_select().clear_order()
        return self

    def set_limit(self, count: Optional[int]) -> "RecordSet":
        self.get_sql_select().limit(count)
        return self

    def set_offset(self, count: Optional[int]) -> "RecordSet":
        self.get_sql_select().offset(count)
        return self

    # Primary keys

    def get_pk(self, value: Any) -> Optional[Record]:
        """Record whose primary key equals ``value``, or None."""
        pk_field = self._sample_item.get_primary_key_field()
        if pk_field is None:
            return None
        value = self._sample_item.get_table().get_field(pk_field).to_program_value(value)
        if value is None:
            return None
        return self.find(pk_field, value)

    def get_pk_values(self) -> List[Any]:
        pk_field = self._sample_item.get_primary_key_field()
        if pk_field is None:
            return []
        return self.get_field_values(pk_field)

    # Writes

    def _transaction_flag(self, use_transaction: bool) -> bool:
        if use_transaction and self._db.in_transaction():
            logger.debug("Already in a transaction, not starting another")
            return False
        return use_transaction

    def delete(self, index: int) -> "RecordSet":
        """Delete the record at ``index`` from the database and from the set."""
        record = self.get(index)
        if record is None:
            return self
        record.delete()
        self.remove(index)
        return self

    def delete_all(self, use_transaction: bool = True) -> "RecordSet":
        """
        Delete every record in the set from the database and empty the set.
        A failure part way through propagates without a rollback.
        """
        use_transaction = self._transaction_flag(use_transaction)
        if use_transaction:
            self._db.begin_transaction()

        for record in self:
            record.delete()
        self.clear()

        if use_transaction:
            self._db.commit()
        return self

    def save(self, use_transaction: bool = True) -> "RecordSet":
        """
        Save every record in the set. A failure part way through propagates
        without a rollback.
        """
        use_transaction = self._transaction_flag(use_transaction)
        if use_transaction:
            self._db.begin_transaction()

        for record in self:
            record.save()

        if use_transaction:
            self._db.commit()
        return self

    # Statement kinds that cannot guarantee the table's row shape

    def get_sql_with(self) -> sql.With:
        raise StatementKindError("WITH", type(self).__name__)

    def get_new_sql_with(self) -> sql.With:
        raise StatementKindError("WITH", type(self).__name__)

    def get_sql_union(self) -> sql.Union:
        raise StatementKindError("UNION", type(self).__name__)

    def get_new_sql_union(self) -> sql.Union:
        raise StatementKindError("UNION", type(self).__name__)

    def set_raw_sql(self, text: str, bindings: Any = None) -> "RecordSet":
        raise StatementKindError("Raw SQL", type(self).__name__)

    def set_raw_sql_bindings(self, bindings: Any) -> "RecordSet":
        raise StatementKindError("Raw SQL", type(self).__name__)

    def add_raw_sql_binding(self, label: str, value: Any) -> "RecordSet":
        raise StatementKindError("Raw SQL", type(self).__name__)
