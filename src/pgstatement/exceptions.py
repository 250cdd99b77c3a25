"""
Statement builder exception classes.
"""
import psycopg
import sqlalchemy.exc


class DatabaseError(Exception):
    """Base class for all pgstatement errors.
    """


class ConnectionFailure(DatabaseError):
    """Error establishing a database connection.
    """


class QueryError(DatabaseError):
    """Error in query syntax or execution.
    """


class TypeConversionError(DatabaseError):
    """Error converting a Python value to a bound parameter.
    """


class ValidationError(DatabaseError):
    """Error in input validation.
    """


class QueryFailure(QueryError):
    """The database rejected or failed to run a dispatched statement.

    The pieces are kept apart so callers can inspect each one:

    :param diagnostic: error text reported by libpq, or None when the
        driver failed without reporting anything.
    :param sql: the SQL text that was dispatched.
    :param params: the parameter values bound to it.
    """

    def __init__(self, diagnostic: str | None, sql: str | None,
                 params: list | tuple = ()) -> None:
        self.diagnostic = diagnostic
        self.sql = sql
        self.params = tuple(params)
        super().__init__(self._format())

    def _format(self) -> str:
        msg = f'{self.diagnostic or ""} {self.sql or ""}'.strip()
        if self.params:
            msg += f'\n Args: {self.params!r}'
        return msg


class QueryResultsNotFound(DatabaseError):
    """Statement succeeded but returned no rows to read a field from.
    """


class InvalidArgument(ValidationError, ValueError):
    """Caller-supplied identifier or literal is not valid.
    """


class AmbiguousResult(DatabaseError):
    """More than one row where at most one was expected.
    """


DbConnectionError = (
    psycopg.OperationalError,
    psycopg.InterfaceError,
    sqlalchemy.exc.OperationalError,
    ConnectionFailure,
    )
