"""
SQL statement builders for PostgreSQL.

Builders accumulate clauses fluently and render psycopg2 SQL. Clauses are
written with ``?`` for positional bindings or ``:name`` for named ones; the
rendered SQL always uses ``%s`` with an ordered list from
:meth:`get_bindings`, so clauses with different binding styles can be mixed
within one statement. Example::

    select = PostgreSQL().select().from_("public.objtest1")
    select.where("stringtwo = ?", "ABCD").order("sometext").limit(10)
    cursor.execute(select.output(), select.get_bindings())
"""

import logging
import re
from typing import Any, Dict, List, Optional, Tuple, Union

from dbobject.exceptions import BindingError, UnsupportedDialectError

logger = logging.getLogger("dbobject.sql")

# Quoted literals and identifiers are matched first so their contents are skipped
_PLACEHOLDER = re.compile(r"'(?:[^']|'')*'|\"[^\"]*\"|\?|(?<![:\w]):([A-Za-z_]\w*)")

ORDER_DIRECTIONS = ("ASC", "DESC")


def bind(clause: str, bindings: Any = None) -> Tuple[str, List[Any]]:
    """
    Render ``clause`` for the driver and return it with its bound values.

    ``bindings`` may be None, a single scalar (one ``?``), a list or tuple
    (``?`` in order) or a dict (``:name``; keys may keep their leading colon).
    Placeholders are only rewritten for the style that was bound, so
    PostgreSQL's ``?`` JSON operators and ``::`` casts pass through untouched
    when nothing is bound. Text inside single-quoted literals and
    double-quoted identifiers is never treated as a placeholder. Literal
    ``%`` is escaped.
    """
    clause = clause.replace("%", "%%")
    if bindings is None:
        return clause, []

    if isinstance(bindings, dict):
        named = {str(key).lstrip(":"): value for key, value in bindings.items()}
        positional = None
    elif isinstance(bindings, (list, tuple)):
        named = None
        positional = list(bindings)
    else:
        named = None
        positional = [bindings]

    values: List[Any] = []

    def replace(match: "re.Match") -> str:
        token = match.group(0)
        if token[0] in "'\"":
            return token
        name = match.group(1)
        if name is None:
            if positional is None:
                return match.group(0)
            if len(values) >= len(positional):
                raise BindingError(f"Not enough bindings for clause: {clause}")
            values.append(positional[len(values)])
            return "%s"
        if named is None:
            return match.group(0)
        if name not in named:
            raise BindingError(f"No binding supplied for :{name}")
        values.append(named[name])
        return "%s"

    rendered = _PLACEHOLDER.sub(replace, clause)

    if positional is not None and len(values) != len(positional):
        raise BindingError(
            f"Clause expects {len(values)} bindings, {len(positional)} given: {clause}"
        )
    return rendered, values


def render(statement: Any, bindings: Any = None) -> Tuple[str, List[Any]]:
    """Render a builder, or raw SQL text with optional bindings."""
    if isinstance(statement, str):
        return bind(statement, bindings)
    return statement.output(), list(statement.get_bindings())


def _order_term(field: str, direction: Optional[str]) -> str:
    direction = (direction or "ASC").upper()
    if direction not in ORDER_DIRECTIONS:
        raise ValueError(f"Invalid sort direction: {direction}")
    return f"{field} {direction}"


class Select:
    """SELECT builder. WHERE conditions are joined with AND."""

    def __init__(self):
        self._fields: List[str] = []
        self._from: List[str] = []
        self._joins: List[Tuple[str, List[Any]]] = []
        self._where: List[Tuple[str, List[Any]]] = []
        self._group_by: List[str] = []
        self._order: List[str] = []
        self._limit: Optional[int] = None
        self._offset: Optional[int] = None

    def fields(self, *fields: str) -> "Select":
        self._fields.extend(fields)
        return self

    def from_(self, table: str, alias: str = None) -> "Select":
        self._from.append(f"{table} {alias}" if alias else table)
        return self

    def join(self, clause: str, bindings: Any = None) -> "Select":
        """Add a raw join fragment, e.g. ``"JOIN other o ON o.id = t.other_id"``."""
        self._joins.append(bind(clause, bindings))
        return self

    def where(self, clause: str, bindings: Any = None) -> "Select":
        self._where.append(bind(clause, bindings))
        return self

    def where_in(self, field: str, values: List[Any]) -> "Select":
        values = list(values)
        if not values:
            # Nothing can match an empty list
            self._where.append(("FALSE", []))
            return self
        placeholders = ", ".join("%s" for _ in values)
        self._where.append((f"{field} IN ({placeholders})", values))
        return self

    def where_in_sub(
        self, field: str, subquery: Union["Select", str], bindings: Any = None
    ) -> "Select":
        sql, values = render(subquery, bindings)
        self._where.append((f"{field} IN ({sql})", values))
        return self

    def group_by(self, *fields: str) -> "Select":
        self._group_by.extend(fields)
        return self

    def order(self, field: str, direction: str = None) -> "Select":
        self._order.append(_order_term(field, direction))
        return self

    def limit(self, count: Optional[int]) -> "Select":
        self._limit = None if count is None else int(count)
        return self

    def offset(self, count: Optional[int]) -> "Select":
        self._offset = None if count is None else int(count)
        return self

    def clear_where(self) -> "Select":
        self._where = []
        return self

    def clear_order(self) -> "Select":
        self._order = []
        return self

    def output(self) -> str:
        query = f"SELECT {', '.join(self._fields) or '*'}"
        if self._from:
            query += f" FROM {', '.join(self._from)}"
        for clause, _ in self._joins:
            query += f" {clause}"
        if self._where:
            query += " WHERE " + " AND ".join(f"({clause})" for clause, _ in self._where)
        if self._group_by:
            query += f" GROUP BY {', '.join(self._group_by)}"
        if self._order:
            query += f" ORDER BY {', '.join(self._order)}"
        if self._limit is not None:
            query += f" LIMIT {self._limit}"
        if self._offset is not None:
            query += f" OFFSET {self._offset}"
        return query

    def get_bindings(self) -> List[Any]:
        values: List[Any] = []
        for _, clause_values in self._joins + self._where:
            values.extend(clause_values)
        return values


class Insert:
    def __init__(self):
        self._table: Optional[str] = None
        self._columns: List[str] = []
        self._placeholders: List[str] = []
        self._values: List[Any] = []
        self._returning: List[str] = []

    def table(self, name: str) -> "Insert":
        self._table = name
        return self

    def field_value(self, name: str, placeholder: str, bindings: Any = None) -> "Insert":
        sql, values = bind(placeholder, bindings)
        self._columns.append(name)
        self._placeholders.append(sql)
        self._values.extend(values)
        return self

    def field_values(self, bound_values: Dict[str, Tuple[str, List[Any]]]) -> "Insert":
        """Add many fields from ``{name: (placeholder, bindings)}``."""
        for name, (placeholder, bindings) in bound_values.items():
            self.field_value(name, placeholder, bindings)
        return self

    def returning(self, field: str) -> "Insert":
        self._returning.append(field)
        return self

    def output(self) -> str:
        query = (
            f"INSERT INTO {self._table} ({', '.join(self._columns)})"
            f" VALUES ({', '.join(self._placeholders)})"
        )
        if self._returning:
            query += f" RETURNING {', '.join(self._returning)}"
        return query

    def get_bindings(self) -> List[Any]:
        return list(self._values)


class Update:
    def __init__(self):
        self._table: Optional[str] = None
        self._assignments: List[Tuple[str, List[Any]]] = []
        self._where: List[Tuple[str, List[Any]]] = []

    def table(self, name: str) -> "Update":
        self._table = name
        return self

    def field_value(self, name: str, placeholder: str, bindings: Any = None) -> "Update":
        sql, values = bind(placeholder, bindings)
        self._assignments.append((f"{name} = {sql}", values))
        return self

    def where(self, clause: str, bindings: Any = None) -> "Update":
        self._where.append(bind(clause, bindings))
        return self

    def has_assignments(self) -> bool:
        return bool(self._assignments)

    def output(self) -> str:
        query = f"UPDATE {self._table} SET " + ", ".join(
            clause for clause, _ in self._assignments
        )
        if self._where:
            query += " WHERE " + " AND ".join(f"({clause})" for clause, _ in self._where)
        return query

    def get_bindings(self) -> List[Any]:
        values: List[Any] = []
        for _, clause_values in self._assignments + self._where:
            values.extend(clause_values)
        return values


class Delete:
    def __init__(self):
        self._table: Optional[str] = None
        self._where: List[Tuple[str, List[Any]]] = []

    def table(self, name: str) -> "Delete":
        self._table = name
        return self

    def where(self, clause: str, bindings: Any = None) -> "Delete":
        self._where.append(bind(clause, bindings))
        return self

    def output(self) -> str:
        query = f"DELETE FROM {self._table}"
        if self._where:
            query += " WHERE " + " AND ".join(f"({clause})" for clause, _ in self._where)
        return query

    def get_bindings(self) -> List[Any]:
        values: List[Any] = []
        for _, clause_values in self._where:
            values.extend(clause_values)
        return values


class With:
    """
    WITH builder: one or more named sub-statements followed by a main statement.
    Sub-statements may be builders or raw SQL text.
    """

    def __init__(self):
        self._recursive = False
        self._ctes: List[Tuple[str, str, List[Any]]] = []
        self._statement: Optional[Tuple[str, List[Any]]] = None

    def recursive(self, flag: bool = True) -> "With":
        self._recursive = flag
        return self

    def set_cte(self, alias: str, statement: Any, bindings: Any = None) -> "With":
        sql, values = render(statement, bindings)
        self._ctes.append((alias, sql, values))
        return self

    def set_select(self, statement: Any, bindings: Any = None) -> "With":
        self._statement = render(statement, bindings)
        return self

    def output(self) -> str:
        query = "WITH RECURSIVE " if self._recursive else "WITH "
        query += ", ".join(f"{alias} AS ({sql})" for alias, sql, _ in self._ctes)
        if self._statement is not None:
            query += f" {self._statement[0]}"
        return query

    def get_bindings(self) -> List[Any]:
        values: List[Any] = []
        for _, _, cte_values in self._ctes:
            values.extend(cte_values)
        if self._statement is not None:
            values.extend(self._statement[1])
        return values


class Union:
    def __init__(self, union_all: bool = False):
        self._union_all = union_all
        self._statements: List[Tuple[str, List[Any]]] = []
        self._order: List[str] = []

    def union_all(self, flag: bool = True) -> "Union":
        self._union_all = flag
        return self

    def set_select(self, statement: Any, bindings: Any = None) -> "Union":
        self._statements.append(render(statement, bindings))
        return self

    def order(self, field: str, direction: str = None) -> "Union":
        self._order.append(_order_term(field, direction))
        return self

    def output(self) -> str:
        joiner = " UNION ALL " if self._union_all else " UNION "
        query = joiner.join(f"({sql})" for sql, _ in self._statements)
        if self._order:
            query += f" ORDER BY {', '.join(self._order)}"
        return query

    def get_bindings(self) -> List[Any]:
        values: List[Any] = []
        for _, statement_values in self._statements:
            values.extend(statement_values)
        return values


class PostgreSQL:
    """Builder factory for the PostgreSQL dialect."""

    dialect = "postgresql"

    def select(self) -> Select:
        return Select()

    def insert(self) -> Insert:
        return Insert()

    def update(self) -> Update:
        return Update()

    def delete(self) -> Delete:
        return Delete()

    def with_(self) -> With:
        return With()

    def union(self) -> Union:
        return Union()


_DRIVERS = {PostgreSQL.dialect: PostgreSQL}


def get_driver(dialect: str) -> PostgreSQL:
    """Return the builder factory for ``dialect`` (e.g. ``"postgresql"``)."""
    try:
        return _DRIVERS[dialect]()
    except KeyError:
        logger.error("SQL: No builder registered for dialect %s", dialect)
        raise UnsupportedDialectError(dialect) from None
