"""
Schema introspection through information_schema.
"""
import logging
from typing import Any

from pgstatement.exceptions import InvalidArgument
from pgstatement.query import QueryBuilder
from pgstatement.result import Row

__all__ = ['get_schema_tables', 'does_table_exist', 'get_table_metadata']

logger = logging.getLogger(__name__)


def get_schema_tables(cn: Any, schema: str = 'public') -> list[str]:
    """Names of the base tables in a schema, sorted.
    """
    q = QueryBuilder(cn, """
select table_name from information_schema.tables
where table_type = 'BASE TABLE' and table_schema = $1
order by table_name
""", schema)
    return q.execute_column('table_name') or []


def does_table_exist(cn: Any, table: str, schema: str = 'public') -> bool:
    """Check whether a base table exists in a schema.
    """
    q = QueryBuilder(cn, """
select table_name from information_schema.tables
where table_name = $1 and table_type = 'BASE TABLE' and table_schema = $2
""", table, schema)
    return q.execute_one_row() is not None


def get_table_metadata(cn: Any, table: str) -> list[Row]:
    """Column metadata for a table, one row per column.

    Each row has column_name, data_type, column_default, is_nullable,
    character_maximum_length, numeric_precision and udt_name.

    Raises InvalidArgument when the table has no columns visible to the
    current user, which usually means it does not exist.
    """
    q = QueryBuilder(cn, """
select column_name, data_type, column_default, is_nullable,
       character_maximum_length, numeric_precision, udt_name
from information_schema.columns
where table_name = $1
order by ordinal_position
""", table)
    rows = q.execute_all()
    if rows is None:
        raise InvalidArgument(f'No columns found for table {table}')
    logger.debug(f'Read metadata for {len(rows)} columns of {table}')
    return rows
