"""Shared fixtures: an in-memory connection and a sample table."""

import pytest

from dbobject.record import Record
from dbobject.table import Table, TableField


class FakeStatement:
    def __init__(self, connection, sql):
        self.connection = connection
        self.sql = sql
        self.closed = False
        self._rows = []
        self._row_count = 0

    def execute(self, bindings=None):
        self.connection.executed.append((self.sql, bindings))
        if self.connection.fail_with is not None:
            raise self.connection.fail_with
        self._rows = list(self.connection.results.pop(0)) if self.connection.results else []
        self._row_count = len(self._rows)

    def fetch_row(self):
        return self._rows.pop(0) if self._rows else None

    def fetch_all(self):
        rows, self._rows = self._rows, []
        return rows

    def row_count(self):
        return self._row_count

    def close(self):
        self.closed = True


class FakeConnection:
    """Records every statement; each execute consumes the next queued result."""

    dialect = "postgresql"

    def __init__(self):
        self.executed = []
        self.results = []
        self.transactions = []
        self.fail_with = None
        self._in_transaction = False

    def queue(self, *rows):
        self.results.append(list(rows))
        return self

    def prepare(self, sql):
        return FakeStatement(self, sql)

    def begin_transaction(self):
        self._in_transaction = True
        self.transactions.append("begin")

    def commit(self):
        self._in_transaction = False
        self.transactions.append("commit")

    def rollback(self):
        self._in_transaction = False
        self.transactions.append("rollback")

    def in_transaction(self):
        return self._in_transaction

    def statements(self, prefix):
        return [sql for sql, _ in self.executed if sql.startswith(prefix)]


class ObjTest(Record):
    pass


class OtherTest(Record):
    pass


def make_objtest_table(strict=False):
    return Table(
        "objtest1",
        [
            TableField(
                "prikey",
                "integer",
                primary_key=True,
                db_default="nextval('objtest1_prikey_seq'::regclass)",
            ),
            TableField("stringone", "character varying"),
            TableField("stringtwo", "character"),
            TableField("sometext", "text"),
            TableField("numberone", "integer"),
            TableField("numbertwo", "numeric"),
            TableField("dateone", "date"),
            TableField("trueorfalse", "boolean"),
            TableField("xypoint", "point"),
            TableField("jsonone", "jsonb"),
        ],
        strict=strict,
    )


@pytest.fixture
def db():
    return FakeConnection()


@pytest.fixture
def table():
    return make_objtest_table()


@pytest.fixture
def record(table, db):
    return ObjTest(table, db)
