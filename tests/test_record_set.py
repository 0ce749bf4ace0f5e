"""Tests for dbobject.record_set."""

import pytest

from conftest import ObjTest, OtherTest
from dbobject.exceptions import MissingPrimaryKeyError, RecordTypeError, StatementKindError
from dbobject.record import Record
from dbobject.record_set import RecordSet
from dbobject.table import Table, TableField

ROWS = [
    {"prikey": 1, "stringone": "Howdy there", "stringtwo": "ABCD", "sometext": "b"},
    {"prikey": 2, "stringone": "Little text", "stringtwo": "G2345", "sometext": "a"},
]


@pytest.fixture
def records(record):
    return RecordSet(record)


@pytest.fixture
def loaded(records, db):
    db.queue(*ROWS)
    return records.run()


class TestQuery:
    """Tests for query building."""

    def test_selects_from_table(self, records, db):
        """Test the set selects from the sample's table."""
        records.run()
        assert db.executed[0] == ("SELECT * FROM public.objtest1", [])

    def test_run_clones_sample(self, loaded, record):
        """Test each row becomes a loaded record of the sample's type."""
        assert loaded.count() == 2
        first = loaded.get(0)
        assert isinstance(first, ObjTest)
        assert first is not record
        assert first.is_loaded()
        assert first.get_id() == 1
        assert record.count() == 0

    def test_add_filter(self, records, db):
        """Test a positional filter."""
        db.queue(ROWS[0])
        records.add_filter("stringtwo = ?", "ABCD").run()
        assert db.executed[0] == ("SELECT * FROM public.objtest1 WHERE (stringtwo = %s)", ["ABCD"])
        assert records.count() == 1

    def test_filter_with_quoted_literals(self, records, db):
        """Test literals containing ? or :name do not consume bindings."""
        records.add_filter("stringone = 'Why?' AND stringtwo = ?", "ABCD")
        records.add_filter_named_bindings(
            "sometext = 'at :noon' AND stringtwo = :two", {"two": "G2345"}
        ).run()
        assert db.executed[0] == (
            "SELECT * FROM public.objtest1"
            " WHERE (stringone = 'Why?' AND stringtwo = %s)"
            " AND (sometext = 'at :noon' AND stringtwo = %s)",
            ["ABCD", "G2345"],
        )

    def test_filters_are_anded(self, records, db):
        """Test several filters combine with AND."""
        records.add_filter("numberone > ?", 1).add_filter("sometext IS NOT NULL").run()
        assert db.executed[0][0] == (
            "SELECT * FROM public.objtest1 WHERE (numberone > %s) AND (sometext IS NOT NULL)"
        )

    def test_add_filter_named_bindings(self, records, db):
        """Test named bindings."""
        records.add_filter_named_bindings(
            "stringone = :str1 and stringtwo = :str2",
            {":str1": "Something to say", ":str2": "G2345"},
        ).run()
        sql, bindings = db.executed[0]
        assert sql == "SELECT * FROM public.objtest1 WHERE (stringone = %s and stringtwo = %s)"
        assert bindings == ["Something to say", "G2345"]

    def test_clear_filter(self, records, db):
        """Test clear_filter drops conditions and their bindings."""
        records.add_filter("stringtwo = ?", "ABCD").clear_filter().run()
        assert db.executed[0] == ("SELECT * FROM public.objtest1", [])

    def test_add_value_in_filter(self, records, db):
        """Test an IN list filter."""
        records.add_value_in_filter("prikey", [1, 2, 3]).run()
        assert db.executed[0] == (
            "SELECT * FROM public.objtest1 WHERE (prikey IN (%s, %s, %s))",
            [1, 2, 3],
        )

    def test_add_value_in_filter_empty(self, records, db):
        """Test an empty IN list matches nothing."""
        records.add_value_in_filter("prikey", []).run()
        assert db.executed[0][0] == "SELECT * FROM public.objtest1 WHERE (FALSE)"

    def test_add_value_in_sql(self, records, db):
        """Test an IN sub-query filter."""
        records.add_value_in_sql(
            "prikey", "SELECT objtest_id FROM public.objtest2 WHERE flag = ?", True
        ).run()
        assert db.executed[0] == (
            "SELECT * FROM public.objtest1"
            " WHERE (prikey IN (SELECT objtest_id FROM public.objtest2 WHERE flag = %s))",
            [True],
        )

    def test_add_record_filter(self, records, db):
        """Test filtering on another record's key."""
        other_table = Table("objtest2", [TableField("prikey", "integer", primary_key=True)])
        other = OtherTest(other_table, db).set_id(42)
        records.add_record_filter(other, "otherkey").run()
        assert db.executed[0] == ("SELECT * FROM public.objtest1 WHERE (otherkey = %s)", [42])

    def test_add_record_filter_default_field(self, records, db, table):
        """Test the key field defaults to the record's primary key."""
        records.add_record_filter(ObjTest(table, db).set_id(3)).run()
        assert db.executed[0][0] == "SELECT * FROM public.objtest1 WHERE (prikey = %s)"

    def test_add_record_filter_without_key(self, records, db):
        """Test records without a primary key cannot be filtered on."""
        keyless = Record(Table("log", [TableField("message")]), db)
        with pytest.raises(MissingPrimaryKeyError):
            records.add_record_filter(keyless)

    def test_order_limit_offset(self, records, db):
        """Test ordering and paging."""
        records.add_order("sometext").add_order("prikey", "desc").set_limit(2).set_offset(4).run()
        assert db.executed[0][0] == (
            "SELECT * FROM public.objtest1 ORDER BY sometext ASC, prikey DESC LIMIT 2 OFFSET 4"
        )

    def test_bad_order_direction(self, records):
        """Test invalid directions are rejected."""
        with pytest.raises(ValueError):
            records.add_order("sometext", "sideways")

    def test_order_then_top(self, records, db):
        """Test the first row in sort order comes back from top."""
        db.queue(ROWS[1], ROWS[0])
        records.add_order("sometext").run()
        assert records.top().get("stringone") == "Little text"

    def test_get_new_sql_select_keeps_table(self, records):
        """Test a fresh SELECT still reads from the table."""
        records.add_filter("prikey = ?", 1)
        assert records.get_new_sql_select().output() == "SELECT * FROM public.objtest1"


class TestUnsupportedStatements:
    """Tests for statement kinds a record set refuses."""

    @pytest.mark.parametrize(
        "method, args",
        [
            ("get_sql_with", ()),
            ("get_new_sql_with", ()),
            ("get_sql_union", ()),
            ("get_new_sql_union", ()),
            ("set_raw_sql", ("SELECT 1",)),
            ("set_raw_sql_bindings", ([1],)),
            ("add_raw_sql_binding", ("a", 1)),
        ],
    )
    def test_rejected(self, records, method, args):
        """Test WITH, UNION and raw SQL raise."""
        with pytest.raises(StatementKindError):
            getattr(records, method)(*args)


class TestMembers:
    """Tests for adding and looking up records."""

    def test_add(self, records, table, db):
        """Test adding a record of the sample's type."""
        records.add(ObjTest(table, db).set("stringone", "X"))
        assert records.count() == 1

    def test_add_wrong_type(self, records, db):
        """Test records of another type are refused."""
        other = OtherTest(Table("objtest2", [TableField("prikey", "integer", primary_key=True)]), db)
        with pytest.raises(RecordTypeError):
            records.add(other)
        with pytest.raises(TypeError):
            records.add(other)
        assert records.count() == 0

    def test_add_subclass_refused(self, records, table, db):
        """Test the type must match exactly."""

        class SpecialObjTest(ObjTest):
            pass

        with pytest.raises(RecordTypeError):
            records.add(SpecialObjTest(table, db))

    def test_get_pk(self, loaded):
        """Test finding a record by primary key value."""
        assert loaded.get_pk(2).get("stringone") == "Little text"
        assert loaded.get_pk("1").get("stringone") == "Howdy there"
        assert loaded.get_pk(99) is None

    def test_get_pk_ignores_unsaved_records(self, loaded, table, db):
        """Test an uncoercible key value matches nothing, not a keyless record."""
        loaded.add(ObjTest(table, db).set("stringone", "unsaved"))
        assert loaded.get_pk("abc") is None
        assert loaded.get_pk(None) is None

    def test_get_pk_values(self, loaded):
        """Test listing primary key values."""
        assert loaded.get_pk_values() == [1, 2]

    def test_get_sample_item(self, records, record):
        """Test get_sample_item."""
        assert records.get_sample_item() is record


class TestWrites:
    """Tests for save, delete and delete_all."""

    def test_delete(self, loaded, db):
        """Test deleting one record by index."""
        before = len(db.executed)
        loaded.delete(0)
        assert db.executed[before] == ("DELETE FROM public.objtest1 WHERE (prikey = %s)", [1])
        assert loaded.count() == 1
        assert loaded.get(0) is None
        assert loaded.get(1).get_id() == 2

    def test_delete_missing_index(self, loaded, db):
        """Test deleting an unknown index does nothing."""
        before = len(db.executed)
        loaded.delete(7)
        assert len(db.executed) == before
        assert loaded.count() == 2

    def test_delete_all(self, loaded, db):
        """Test delete_all removes every record in one transaction."""
        loaded.delete_all()
        assert len(db.statements("DELETE")) == 2
        assert db.transactions == ["begin", "commit"]
        assert loaded.is_empty()

    def test_delete_all_without_transaction(self, loaded, db):
        """Test delete_all can run outside a transaction."""
        loaded.delete_all(use_transaction=False)
        assert len(db.statements("DELETE")) == 2
        assert db.transactions == []

    def test_delete_all_inside_transaction(self, loaded, db):
        """Test no nested transaction is started."""
        db.begin_transaction()
        loaded.delete_all()
        assert db.transactions == ["begin"]
        assert db.in_transaction()

    def test_delete_all_failure(self, loaded, db):
        """Test failures propagate and leave the transaction open."""
        db.fail_with = RuntimeError("lock timeout")
        with pytest.raises(RuntimeError):
            loaded.delete_all()
        assert db.transactions == ["begin"]
        assert loaded.count() == 2

    def test_save(self, loaded, db):
        """Test save updates every record in one transaction."""
        for record in loaded:
            record.set("sometext", "changed")
        loaded.save()

        updates = [(sql, bindings) for sql, bindings in db.executed if sql.startswith("UPDATE")]
        assert len(updates) == 2
        assert updates[0][1][-1] == 1
        assert updates[1][1][-1] == 2
        assert db.transactions == ["begin", "commit"]

    def test_save_inserts_new_records(self, records, table, db):
        """Test new records are inserted."""
        records.add(ObjTest(table, db).set("stringone", "A"))
        records.add(ObjTest(table, db).set("stringone", "B"))
        db.queue({"prikey": 10}).queue({"prikey": 11})
        records.save()

        assert len(db.statements("INSERT")) == 2
        assert records.get_pk_values() == [10, 11]
