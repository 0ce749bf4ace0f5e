"""
Exception hierarchy for dbobject.

Every error raised by the package itself derives from :class:`DBObjectError`.
Errors coming from psycopg2 (malformed SQL, constraint violations, lost
connections) are not wrapped, except by :meth:`dbobject.item_set.ItemSet.run`
when it is asked to raise instead of failing soft.
"""


class DBObjectError(Exception):
    pass


class MissingPrimaryKeyError(DBObjectError, LookupError):
    """Raised when a load needs a primary key value and none is available."""

    def __init__(self, table_name: str, message: str = None):
        self.table_name = table_name
        super().__init__(
            message or f"No primary key value specified for {table_name}. Unable to load"
        )


class StatementKindError(DBObjectError):
    """Raised when a collection is asked for a statement kind it cannot run."""

    def __init__(self, kind: str, collection: str):
        self.kind = kind
        super().__init__(f"{kind} statements not supported for {collection}")


class RecordTypeError(DBObjectError, TypeError):
    def __init__(self, expected: type, received: type):
        self.expected = expected
        self.received = received
        super().__init__(
            f"Expected a {expected.__name__} record, received {received.__name__}"
        )


class CoercionError(DBObjectError, ValueError):
    """Raised by strict tables when a value does not fit its field type."""

    def __init__(self, field_name: str, value, reason: str = ""):
        self.field_name = field_name
        self.value = value
        message = f"Value {value!r} is not valid for field '{field_name}'"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class BindingError(DBObjectError, ValueError):
    pass


class QueryError(DBObjectError):
    """Raised by collection reads that were asked not to fail soft."""


class UnsupportedDialectError(DBObjectError):
    def __init__(self, dialect: str):
        self.dialect = dialect
        super().__init__(f"Unsupported SQL engine requested: {dialect}")
