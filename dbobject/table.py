"""
Table metadata and per-field value coercion for PostgreSQL tables.

A :class:`Table` knows its fields, their types and its primary keys. Each
:class:`TableField` converts values between what PostgreSQL hands back (or
what a caller assigns) and the program value stored on a record, and back into
bound SQL parameters for writes.

Tables can be declared with a Pydantic model, using :func:`Column` for field
metadata, or looked up from ``information_schema`` with a live connection::

    class ObjTest1(BaseModel):
        prikey: int = Column(primary_key=True, db_default="nextval('objtest1_prikey_seq')")
        stringone: str = Column()
        dateone: datetime.date = Column()

    table = Table.from_model(ObjTest1)
    table = Table.lookup("objtest1", db_conn=db)

Coercion is lenient by default: values that cannot be coerced are stored as
NULL with a warning. Pass ``strict=True`` to raise :class:`CoercionError`
instead.
"""

import datetime
import json
import logging
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple, Type, Union, get_args, get_origin

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from dbobject.db_util import DbUtil
from dbobject.exceptions import CoercionError

logger = logging.getLogger("dbobject.table")

Point = Tuple[float, float]

_TYPE_FAMILIES: Dict[str, Any] = {
    "text": str,
    "character varying": str,
    "varchar": str,
    "character": str,
    "char": str,
    "bpchar": str,
    "uuid": str,
    "xml": str,
    "money": str,
    "user-defined": str,
    "integer": int,
    "int": int,
    "int2": int,
    "int4": int,
    "int8": int,
    "smallint": int,
    "bigint": int,
    "serial": int,
    "bigserial": int,
    "numeric": Decimal,
    "decimal": Decimal,
    "double precision": float,
    "float8": float,
    "float4": float,
    "real": float,
    "boolean": bool,
    "bool": bool,
    "date": datetime.date,
    "timestamp": datetime.datetime,
    "timestamp without time zone": datetime.datetime,
    "timestamptz": datetime.datetime,
    "timestamp with time zone": datetime.datetime,
    "time": datetime.time,
    "time without time zone": datetime.time,
    "timetz": datetime.time,
    "time with time zone": datetime.time,
    "interval": datetime.timedelta,
    "json": Any,
    "jsonb": Any,
    "point": Point,
}

_JSON_TYPES = ("json", "jsonb")


class ColumnMetadata(BaseModel):
    """
    Metadata for a table column (stored in Pydantic Field metadata).
    Used by :func:`Column` and by :meth:`Table.from_model`.
    """

    db_type: Optional[str] = None
    db_default: Optional[Any] = None
    nullable: Optional[bool] = True
    primary_key: Optional[bool] = False
    is_timezone_aware: Optional[bool] = False


def Column(
    default: Optional[Any] = None,
    db_type: Optional[str] = None,
    db_default: Optional[Any] = None,
    nullable: Optional[bool] = True,
    primary_key: Optional[bool] = False,
    is_timezone_aware: Optional[bool] = False,
) -> Any:
    """
    Declare a table column with optional DB metadata for :meth:`Table.from_model`.

    ``db_type`` overrides the PostgreSQL type otherwise derived from the
    annotation (e.g. ``"point"`` or ``"jsonb"``).
    """
    metadata_dict = ColumnMetadata(
        db_type=db_type,
        db_default=db_default,
        nullable=False if primary_key else nullable,
        primary_key=primary_key,
        is_timezone_aware=is_timezone_aware,
    ).model_dump(exclude_unset=True)
    return Field(default=default, json_schema_extra={"column_metadata": metadata_dict})


def classname_to_table_name(classname: str) -> str:
    """Convert PascalCase class name to snake_case table name."""
    table_name = classname[0].lower()
    for char in classname[1:]:
        if char.isupper():
            table_name += "_"
        table_name += char.lower()
    return table_name


def get_db_type(python_type: Any, metadata: Optional[ColumnMetadata] = None) -> str:
    """Map a Python type (including Optional, List, Dict) to a PostgreSQL type name."""
    type_mapping = {
        str: "text",
        int: "integer",
        float: "double precision",
        Decimal: "numeric",
        datetime.datetime: (
            "timestamptz" if metadata and metadata.is_timezone_aware else "timestamp"
        ),
        datetime.date: "date",
        datetime.time: "time",
        datetime.timedelta: "interval",
        bool: "boolean",
        dict: "jsonb",
    }

    origin = get_origin(python_type)
    if origin is Union:
        args = get_args(python_type)
        non_none_type = next((arg for arg in args if arg is not type(None)), None)
        if non_none_type:
            return get_db_type(non_none_type, metadata)

    if origin is list:
        args = get_args(python_type)
        if len(args) != 1:
            return "jsonb"
        item_type = args[0]
        sub_origin = get_origin(item_type) or item_type
        if sub_origin is dict:
            return "jsonb"
        item_db_type = type_mapping.get(sub_origin, "text")
        return f"{item_db_type}[]" if item_db_type != "jsonb" else "jsonb"

    if origin is dict:
        return "jsonb"

    return type_mapping.get(python_type, "text")


def format_value(value: Any) -> Any:
    """Format a Python value for SQL (e.g. timedelta -> interval string, dict -> JSON)."""
    if isinstance(value, list):
        if len(value) > 0 and isinstance(value[0], dict):
            return json.dumps(value, default=str)
        return value
    elif isinstance(value, datetime.timedelta):
        days = value.days
        seconds = value.seconds
        hours, remainder = divmod(seconds, 3600)
        minutes, seconds = divmod(remainder, 60)
        return f"{days} days {hours:02}:{minutes:02}:{seconds:02}"
    elif isinstance(value, dict):
        return json.dumps(value, default=str)
    return value


def _python_type_for(db_type: str) -> Any:
    if db_type.endswith("[]"):
        return List[_python_type_for(db_type[:-2])]
    return _TYPE_FAMILIES.get(db_type, Any)


class TableField:
    """
    One column of a :class:`Table` and the codec for its values.

    ``to_program_value`` is safe to apply repeatedly: a coerced value coerces
    to itself.
    """

    def __init__(
        self,
        name: str,
        db_type: str = "text",
        nullable: bool = True,
        primary_key: bool = False,
        db_default: Any = None,
        strict: bool = False,
    ):
        self.name = name
        self.db_type = db_type.lower()
        self.nullable = False if primary_key else nullable
        self.primary_key = primary_key
        self.db_default = db_default
        self.strict = strict
        self.python_type = _python_type_for(self.db_type)
        self._adapter = TypeAdapter(self.python_type)

    def __repr__(self) -> str:
        return f"TableField({self.name!r}, {self.db_type!r}, primary_key={self.primary_key})"

    def to_program_value(self, raw: Any) -> Any:
        if raw is None:
            return None

        if self.python_type is str and not self.strict and not isinstance(raw, str):
            raw = str(raw)
        elif (
            self.python_type is datetime.date
            and not self.strict
            and isinstance(raw, datetime.datetime)
        ):
            # Date columns keep the day of a timestamp
            raw = raw.date()
        elif self.python_type is Point and isinstance(raw, str):
            # PostgreSQL renders points as "(x,y)"
            try:
                raw = tuple(float(part) for part in raw.strip().strip("()").split(","))
            except ValueError:
                pass

        try:
            return self._adapter.validate_python(raw, strict=self.strict)
        except ValidationError as error:
            reason = error.errors()[0]["msg"] if error.errors() else str(error)
            if self.strict:
                raise CoercionError(self.name, raw, reason) from error
            logger.warning(
                "Field %s: cannot coerce %s to %s (%s), storing NULL",
                self.name,
                type(raw).__name__,
                self.db_type,
                reason,
            )
            return None

    def to_bound_value(self, value: Any) -> Tuple[str, List[Any]]:
        value = self.to_program_value(value)
        if value is None:
            return "?", [None]
        if self.python_type is Point:
            return "point(?, ?)", [value[0], value[1]]
        if self.db_type in _JSON_TYPES and not isinstance(value, str):
            return "?", [json.dumps(value, default=str)]
        return "?", [format_value(value)]


class Table:
    """
    Field metadata for one PostgreSQL table.

    Fields keep their declaration (or ordinal) order; primary keys are kept in
    key order.
    """

    dialect = "postgresql"

    def __init__(
        self,
        name: str,
        fields: Optional[List[TableField]] = None,
        schema: str = "public",
        strict: bool = False,
        primary_keys: Optional[List[str]] = None,
    ):
        self._name = name
        self._schema = schema
        self.strict = strict
        self._fields: Dict[str, TableField] = {}
        for field in fields or []:
            self.add_field(field)
        if primary_keys is not None:
            self._primary_keys = list(primary_keys)
        else:
            self._primary_keys = [f.name for f in self._fields.values() if f.primary_key]

    def __repr__(self) -> str:
        return f"Table({self.get_fqn()!r}, fields={list(self._fields)})"

    def add_field(self, field: TableField) -> "Table":
        field.strict = self.strict
        self._fields[field.name] = field
        return self

    def field_exists(self, name: str) -> bool:
        return name in self._fields

    def get_field(self, name: str) -> TableField:
        return self._fields[name]

    def get_fields(self) -> List[TableField]:
        return list(self._fields.values())

    def get_field_names(self) -> List[str]:
        return list(self._fields)

    def get_primary_keys(self) -> List[str]:
        return list(self._primary_keys)

    def get_name(self) -> str:
        return self._name

    def get_schema(self) -> str:
        return self._schema

    def get_fqn(self) -> str:
        return f"{self._schema}.{self._name}"

    def supports_returning(self) -> bool:
        return True

    @classmethod
    def from_model(
        cls,
        model: Type[BaseModel],
        name: str = None,
        schema: str = "public",
        strict: bool = False,
    ) -> "Table":
        """
        Build a table from a Pydantic model declared with :func:`Column`.
        The table name defaults to the snake_cased class name.
        """
        fields = []
        for field_name, field_info in model.model_fields.items():
            metadata = ColumnMetadata()
            if (
                isinstance(field_info.json_schema_extra, dict)
                and "column_metadata" in field_info.json_schema_extra
            ):
                metadata = ColumnMetadata(**field_info.json_schema_extra["column_metadata"])
            fields.append(
                TableField(
                    field_name,
                    metadata.db_type or get_db_type(field_info.annotation, metadata),
                    nullable=metadata.nullable,
                    primary_key=metadata.primary_key,
                    db_default=metadata.db_default,
                )
            )
        return cls(
            name or classname_to_table_name(model.__name__),
            fields,
            schema=schema,
            strict=strict,
        )

    @classmethod
    def lookup(
        cls,
        name: str,
        db_conn: DbUtil,
        schema: str = "public",
        strict: bool = False,
    ) -> "Table":
        """Build a table from ``information_schema`` using ``db_conn``."""
        table = cls(name, schema=schema, strict=strict)
        table.run_field_lookup(db_conn)
        return table

    def run_field_lookup(self, db_conn: DbUtil) -> "Table":
        """
        Replace this table's fields and primary keys with what the database
        reports. Raises ValueError if the table has no columns.
        """
        query = (
            "SELECT c.column_name, c.data_type, c.udt_name, c.is_nullable,"
            " c.column_default, kcu.ordinal_position AS key_position"
            " FROM information_schema.columns c"
            " LEFT JOIN information_schema.table_constraints tc"
            " ON tc.table_schema = c.table_schema AND tc.table_name = c.table_name"
            " AND tc.constraint_type = 'PRIMARY KEY'"
            " LEFT JOIN information_schema.key_column_usage kcu"
            " ON kcu.constraint_name = tc.constraint_name"
            " AND kcu.table_schema = tc.table_schema"
            " AND kcu.table_name = tc.table_name"
            " AND kcu.column_name = c.column_name"
            " WHERE c.table_schema = %s AND c.table_name = %s"
            " ORDER BY c.ordinal_position;"
        )
        try:
            columns = db_conn.execute_query(
                query=query,
                data=(self._schema, self._name),
            )
        except Exception as e:
            logger.error("Error in field lookup for %s: %s", self.get_fqn(), e, exc_info=True)
            raise

        if not columns:
            raise ValueError(f"Table not found or has no columns: {self.get_fqn()}")

        self._fields = {}
        keyed = []
        for column in columns:
            data_type = column["data_type"].lower()
            if data_type == "array":
                data_type = column["udt_name"].lstrip("_") + "[]"
            is_key = column["key_position"] is not None
            self.add_field(
                TableField(
                    column["column_name"],
                    data_type,
                    nullable=column["is_nullable"] == "YES",
                    primary_key=is_key,
                    db_default=column["column_default"],
                )
            )
            if is_key:
                keyed.append((column["key_position"], column["column_name"]))
        self._primary_keys = [field_name for _, field_name in sorted(keyed)]
        logger.debug("Looked up %d fields for %s", len(self._fields), self.get_fqn())
        return self
