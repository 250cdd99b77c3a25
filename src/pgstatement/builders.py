"""
INSERT and UPDATE statement construction from column/value assignments.

Both builders are QueryBuilders: call set_sql() once the columns are in,
then any of the execute methods, e.g.::

    q = UpdateBuilder(cn, 'users', 'id', 5)
    q.add_columns({'name': 'a', 'age': 3})
    q.set_sql()
    q.execute_with_return_field('id')

Table and column names are written into the SQL as given; only values are
bound as parameters.
"""
import logging
from collections.abc import Mapping
from typing import Any, Self

from pgstatement.exceptions import InvalidArgument
from pgstatement.query import QueryBuilder
from pgstatement.types import Param

__all__ = ['InsertUpdateBuilder', 'InsertBuilder', 'UpdateBuilder']

logger = logging.getLogger(__name__)


class InsertUpdateBuilder(QueryBuilder):
    """Common state for statements built from (column, value) pairs."""

    def __init__(self, cn: Any, table: str) -> None:
        super().__init__(cn)
        self.table = table
        self.columns: list[str] = []

    def add_column(self, name: str, value: Param) -> Self:
        """Add one column assignment."""
        self.columns.append(name)
        self._params.append(value)
        return self

    def add_columns(self, columns: Mapping[str, Param]) -> Self:
        """Add every assignment of a column to value mapping, in order."""
        for name, value in columns.items():
            self.add_column(name, value)
        return self

    def clear(self) -> Self:
        """Empty the statement and the column assignments."""
        super().clear()
        self.columns = []
        return self

    def set_sql(self) -> Self:
        raise NotImplementedError

    def _require_columns(self) -> None:
        if not self.columns:
            raise InvalidArgument(f'No columns added for {self.table}')


class InsertBuilder(InsertUpdateBuilder):
    """Builds ``INSERT INTO table (c1, ...) VALUES ($1, ...)``."""

    def set_sql(self) -> Self:
        """Write the INSERT statement for the columns added so far."""
        self._require_columns()
        names = ', '.join(self.columns)
        placeholders = ', '.join(f'${i}' for i in range(1, len(self.columns) + 1))
        self._sql = f'INSERT INTO {self.table} ({names}) VALUES ({placeholders})'
        logger.debug(f'Built insert for {self.table} with {len(self.columns)} columns')
        return self


class UpdateBuilder(InsertUpdateBuilder):
    """Builds ``UPDATE table SET c1 = $1, ... WHERE column = $N``.

    SET placeholders are numbered as columns are added. set_sql() binds the
    WHERE value last, so call it exactly once per statement: a second call
    binds the WHERE value again and renumbers the WHERE placeholder.
    """

    def __init__(self, cn: Any, table: str, where_column: str,
                 where_value: Param) -> None:
        super().__init__(cn, table)
        self.where_column = where_column
        self.where_value = where_value
        self.assignments = ''

    def add_column(self, name: str, value: Param) -> Self:
        """Add ``name = $N`` to the SET list."""
        super().add_column(name, value)
        if len(self.columns) > 1:
            self.assignments += ', '
        self.assignments += f'{name} = ${len(self._params)}'
        return self

    def clear(self) -> Self:
        super().clear()
        self.assignments = ''
        return self

    def set_sql(self) -> Self:
        """Write the UPDATE statement, binding the WHERE value last."""
        self._require_columns()
        self._params.append(self.where_value)
        self._sql = (f'UPDATE {self.table} SET {self.assignments} '
                     f'WHERE {self.where_column} = ${len(self._params)}')
        logger.debug(f'Built update for {self.table} with {len(self.columns)} columns')
        return self
