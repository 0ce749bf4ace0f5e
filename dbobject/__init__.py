"""
dbobject: maps PostgreSQL rows to record objects and result sets.

Example::

    from dbobject import DbUtil, Record, RecordSet, Table
    db = DbUtil()
    db.connect()
    table = Table.lookup("objtest1", db_conn=db)
    record = Record(table, db).load(1)
    records = RecordSet(Record(table, db)).add_order("stringone").run()
"""

__version__ = "0.1.0"

from dbobject.db_util import DbStatement, DbUtil
from dbobject.exceptions import (
    BindingError,
    CoercionError,
    DBObjectError,
    MissingPrimaryKeyError,
    QueryError,
    RecordTypeError,
    StatementKindError,
    UnsupportedDialectError,
)
from dbobject.item import Item
from dbobject.item_set import ItemSet, StatementKind
from dbobject.record import LoadStatus, Record
from dbobject.record_set import RecordSet
from dbobject.table import Column, ColumnMetadata, Table, TableField

__all__ = [
    "DbUtil",
    "DbStatement",
    "Table",
    "TableField",
    "Column",
    "ColumnMetadata",
    "Item",
    "ItemSet",
    "StatementKind",
    "Record",
    "RecordSet",
    "LoadStatus",
    "DBObjectError",
    "MissingPrimaryKeyError",
    "StatementKindError",
    "RecordTypeError",
    "CoercionError",
    "BindingError",
    "QueryError",
    "UnsupportedDialectError",
    "__version__",
]
