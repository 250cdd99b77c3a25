"""
Parameterized statement building and execution.

A QueryBuilder accumulates SQL text with ``$N`` positional placeholders
and the parameter values bound to them, dispatches both in one
``PQexecParams`` call, and shapes the result:

    q = QueryBuilder(cn, 'SELECT id, name FROM users WHERE ')
    q.null_aware_equals('deleted_at', None).append(' AND age > $1', 30)
    q.execute_all()  # [{'id': '1', 'name': 'Alice'}]

Values are never interpolated into the SQL text. The builder is cleared
after every successful execution so the same instance can be reused for an
unrelated statement without re-running the previous one by accident.
"""
import logging
import time
from typing import Any, Self

import pandas as pd
import psycopg
from pgstatement.exceptions import AmbiguousResult, InvalidArgument
from pgstatement.exceptions import QueryFailure, QueryResultsNotFound
from pgstatement.result import Result, Row
from pgstatement.types import Param, decode_value, dump_params, encode_boolean
from psycopg.pq import DiagnosticField, ExecStatus

__all__ = ['QueryBuilder', 'get_pgconn', 'get_encoding', 'get_adapt_context',
           'describe_error']

logger = logging.getLogger(__name__)

_SUCCESS_STATUSES = frozenset({
    ExecStatus.COMMAND_OK,
    ExecStatus.TUPLES_OK,
    ExecStatus.SINGLE_TUPLE,
    })

# Labels as libpq prints them in a verbose error message
DIAGNOSTIC_FIELDS = (
    ('SQLSTATE', DiagnosticField.SQLSTATE),
    ('DETAIL', DiagnosticField.MESSAGE_DETAIL),
    ('HINT', DiagnosticField.MESSAGE_HINT),
    ('POSITION', DiagnosticField.STATEMENT_POSITION),
    )


def get_pgconn(cn: Any) -> Any:
    """Return the libpq connection behind a connection handle.

    Accepts a psycopg Connection, a ConnectionWrapper or a bare PGconn.
    """
    return getattr(cn, 'pgconn', cn)


def get_encoding(cn: Any) -> str:
    """Return the Python codec for the handle's client encoding."""
    encoding = getattr(cn, 'encoding', None)
    if encoding is None:
        encoding = getattr(getattr(cn, 'info', None), 'encoding', None)
    return encoding if isinstance(encoding, str) else 'utf-8'


def get_adapt_context(cn: Any) -> psycopg.BaseConnection | None:
    """Return the psycopg connection whose adapters dump parameters, if any."""
    conn = getattr(cn, 'driver_connection', cn)
    return conn if isinstance(conn, psycopg.BaseConnection) else None


def describe_error(pgresult: Any, encoding: str = 'utf-8') -> str | None:
    """Diagnostic text for a failed result.

    libpq's error message, followed by the SQLSTATE and whichever of the
    detail, hint and error position the message does not already carry.
    """
    message = (decode_value(pgresult.error_message, encoding) or '').strip()
    lines = [message] if message else []
    for label, field in DIAGNOSTIC_FIELDS:
        value = decode_value(pgresult.error_field(field), encoding)
        if value and f'{label}:' not in message:
            lines.append(f'{label}:  {value}')
    return '\n'.join(lines) or None


class QueryBuilder:
    """SQL text plus ordered positional parameters, and ways to run them.

    The Nth ``$N`` placeholder in the text is bound to the Nth parameter.
    append() does not check that the two agree; that is up to the caller.
    null_aware_equals() and the insert/update builders number their own
    placeholders.
    """

    OPERATORS = ('=', '!=', '<', '>', '<=', '>=', 'IS', 'IS NOT', 'LIKE', 'ILIKE')

    def __init__(self, cn: Any, sql: str | None = None, *params: Param) -> None:
        """Create a builder on a connection handle, optionally seeded like append().
        """
        self.cn = cn
        self._sql: str | None = None
        self._params: list[Param] = []
        if sql is not None:
            self.append(sql, *params)

    def __repr__(self) -> str:
        return f'{type(self).__name__}(sql={self._sql!r}, params={self._params!r})'

    @property
    def pgconn(self) -> Any:
        return get_pgconn(self.cn)

    @property
    def encoding(self) -> str:
        return get_encoding(self.cn)

    @property
    def text(self) -> str | None:
        """Accumulated SQL text, or None when nothing has been set."""
        return self._sql or None

    @property
    def parameters(self) -> list[Param]:
        """Copy of the bound parameter values in placeholder order."""
        return list(self._params)

    def append(self, sql: str, *params: Param) -> Self:
        """Append SQL text and the values for any placeholders it contains.
        """
        self._sql = (self._sql or '') + sql
        self._params.extend(params)
        return self

    def null_aware_equals(self, name: str, value: Param) -> Self:
        """Append an equality test on a column that also matches NULL.

        ``= NULL`` never matches in SQL, so None becomes ``name IS null``
        and binds nothing.
        """
        if value is None:
            self._sql = (self._sql or '') + f'{name} IS null'
        else:
            self._params.append(value)
            self._sql = (self._sql or '') + f'{name} = ${len(self._params)}'
        return self

    def reset(self, sql: str, params: list[Param] | tuple[Param, ...]) -> Self:
        """Replace the statement text and parameters wholesale."""
        self._sql = sql
        self._params = list(params)
        return self

    def clear(self) -> Self:
        """Empty the statement text and parameters."""
        self._sql = None
        self._params = []
        return self

    def coerce_booleans(self) -> Self:
        """Replace native bool parameters with the 't'/'f' text literals."""
        self._params = [encode_boolean(p) if isinstance(p, bool) else p
                        for p in self._params]
        return self

    def execute(self, coerce_booleans: bool = False) -> Result:
        """Dispatch the statement with its bound parameters.

        With ``coerce_booleans`` native bools are sent as the 't'/'f'
        literals; the builder's own parameters are not rewritten.

        On success the builder is cleared and the Result handed to the
        caller. On failure QueryFailure is raised and the builder is left
        as it was so it can be inspected or retried. Parameters psycopg
        cannot dump raise TypeConversionError before anything is sent.
        """
        sql = self._sql or ''
        params = list(self._params)
        if coerce_booleans:
            params = [encode_boolean(p) if isinstance(p, bool) else p for p in params]
        encoding = self.encoding
        pgconn = self.pgconn
        values = dump_params(params, get_adapt_context(self.cn))

        logger.debug(f'SQL:\n{sql}\nargs: {params}')
        start = time.time()
        try:
            pgresult = pgconn.exec_params(sql.encode(encoding), values)
        except psycopg.Error as err:
            # libpq often has nothing to say when dispatch itself fails
            diagnostic = (decode_value(pgconn.error_message, encoding) or '').strip()
            logger.error(f'Error with query:\nSQL:\n{sql}\nargs: {params}')
            raise QueryFailure(diagnostic or str(err) or None, sql, params) from err
        finally:
            elapsed = time.time() - start
            if hasattr(self.cn, 'addcall'):
                self.cn.addcall(elapsed)
            logger.debug(f'Query time: {elapsed:.4f}s')

        if pgresult.status not in _SUCCESS_STATUSES:
            diagnostic = (describe_error(pgresult, encoding)
                          or (decode_value(pgconn.error_message, encoding) or '').strip())
            pgresult.clear()
            logger.error(f'Error with query:\nSQL:\n{sql}\nargs: {params}')
            raise QueryFailure(diagnostic or None, sql, params)

        self.clear()
        result = Result(pgresult, encoding)
        logger.debug(f'Query result: {result.command_status}')
        return result

    def execute_all(self, coerce_booleans: bool = False) -> list[Row] | None:
        """Execute and return every row, or None when there are no rows.
        """
        with self.execute(coerce_booleans) as result:
            if result.ntuples == 0:
                return None
            return result.rows()

    def execute_column(self, name: str, coerce_booleans: bool = False) -> list[str | None] | None:
        """Execute and return one named column from every row, or None when
        there are no rows.
        """
        with self.execute(coerce_booleans) as result:
            if result.ntuples == 0:
                return None
            return result.column(name)

    def execute_one_row(self, coerce_booleans: bool = False) -> Row | None:
        """Execute and return the first row, or None when there are no rows.

        Extra rows are ignored. Use get_row() when more than one row is an
        error.
        """
        with self.execute(coerce_booleans) as result:
            if result.ntuples == 0:
                return None
            return result.rows()[0]

    def execute_frame(self, coerce_booleans: bool = False) -> pd.DataFrame:
        """Execute and return the rows as a DataFrame.

        An empty result still carries the result's column names.
        """
        with self.execute(coerce_booleans) as result:
            return pd.DataFrame.from_records(result.rows(), columns=result.column_names)

    def execute_with_return_field(self, name: str, coerce_booleans: bool = False) -> str | None:
        """Run an INSERT, UPDATE or DELETE and return one column of the first
        affected row.

        ``RETURNING name`` is appended and the statement runs before the
        column is looked up, so an invalid name still lets the mutation take
        effect before InvalidArgument is raised. When no row was affected
        QueryResultsNotFound is raised. To read several returned columns,
        append RETURNING yourself and call execute().

        The RETURNING clause stays in the builder when execution fails, so
        reset() the statement before retrying rather than calling this again.
        """
        self.append(f' RETURNING {name}')
        with self.execute(coerce_booleans) as result:
            if result.ntuples == 0:
                raise QueryResultsNotFound(f'No rows returned for {name}')
            if name not in result.column_names:
                raise InvalidArgument(f'Query executed, but {name} column does not exist')
            return result.rows()[0][name]

    def get_row(self, coerce_booleans: bool = False) -> Row | None:
        """Execute expecting at most one row.

        Returns None for no rows and the row for exactly one. More than one
        row raises AmbiguousResult.
        """
        with self.execute(coerce_booleans) as result:
            count = result.ntuples
            if count == 0:
                return None
            if count == 1:
                return result.rows()[0]
            raise AmbiguousResult(f'Expected at most one row, got {count}')

    def record_exists(self, coerce_booleans: bool = False) -> bool:
        """Whether the statement returns exactly one row."""
        return self.get_row(coerce_booleans) is not None

    @classmethod
    def validate_where_operator(cls, op: str) -> bool:
        """Check a comparison operator against the allowed list.

        >>> QueryBuilder.validate_where_operator('is not')
        True
        >>> QueryBuilder.validate_where_operator('; DROP')
        False
        """
        return op.upper() in cls.OPERATORS

    @classmethod
    def where_operators_text(cls) -> str:
        """Allowed comparison operators as a comma-separated list."""
        return ', '.join(cls.OPERATORS)
