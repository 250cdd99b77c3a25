"""
Parameterized PostgreSQL statement building and execution.

Statements are assembled with QueryBuilder (or the InsertBuilder and
UpdateBuilder constructors) and dispatched with positional ``$N``
parameter binding. The module functions below are shortcuts for the
common single-statement cases:

- query(cn, sql, *params) - a QueryBuilder seeded with sql and params
- insert_row(cn, table, values) - INSERT one row from a column mapping
- update_row(cn, table, where_column, where_value, values) - UPDATE rows
"""
__version__ = '0.1.0'

from collections.abc import Mapping
from typing import Any

from pgstatement.builders import InsertBuilder, InsertUpdateBuilder
from pgstatement.builders import UpdateBuilder
from pgstatement.connection import ConnectionWrapper, connect
from pgstatement.exceptions import AmbiguousResult, ConnectionFailure
from pgstatement.exceptions import DatabaseError, InvalidArgument, QueryError
from pgstatement.exceptions import QueryFailure, QueryResultsNotFound
from pgstatement.exceptions import TypeConversionError, ValidationError
from pgstatement.options import DatabaseOptions
from pgstatement.query import QueryBuilder
from pgstatement.result import Result
from pgstatement.schema import does_table_exist, get_schema_tables
from pgstatement.schema import get_table_metadata
from pgstatement.types import Param, blank_to_null, decode_boolean
from pgstatement.types import encode_boolean


def query(cn: Any, sql: str | None = None, *params: Param) -> QueryBuilder:
    """Create a statement builder seeded with sql and params.
    """
    return QueryBuilder(cn, sql, *params)


def _run(builder: InsertUpdateBuilder, returning: str | None) -> Any:
    builder.set_sql()
    if returning is not None:
        return builder.execute_with_return_field(returning)
    with builder.execute() as result:
        return result.rowcount


def insert_row(cn: Any, table: str, values: Mapping[str, Param],
               returning: str | None = None) -> Any:
    """Insert one row from a column to value mapping.

    Returns the inserted row count, or the value of the ``returning``
    column when one is named.
    """
    return _run(InsertBuilder(cn, table).add_columns(values), returning)


def update_row(cn: Any, table: str, where_column: str, where_value: Param,
               values: Mapping[str, Param], returning: str | None = None) -> Any:
    """Update the rows where ``where_column = where_value``.

    Returns the updated row count, or the value of the ``returning``
    column from the first updated row when one is named.
    """
    builder = UpdateBuilder(cn, table, where_column, where_value)
    return _run(builder.add_columns(values), returning)


__all__ = [
    'connect',
    'ConnectionWrapper',
    'DatabaseOptions',
    'QueryBuilder',
    'InsertBuilder',
    'UpdateBuilder',
    'Result',
    'query',
    'insert_row',
    'update_row',
    'get_schema_tables',
    'does_table_exist',
    'get_table_metadata',
    'encode_boolean',
    'decode_boolean',
    'blank_to_null',
    'DatabaseError',
    'ConnectionFailure',
    'QueryError',
    'QueryFailure',
    'QueryResultsNotFound',
    'InvalidArgument',
    'AmbiguousResult',
    'TypeConversionError',
    'ValidationError',
]
