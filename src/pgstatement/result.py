"""Result handle over a single libpq PGresult."""
from typing import Any, Self

from pgstatement.exceptions import InvalidArgument
from pgstatement.types import decode_value

Row = dict[str, str | None]


class Result:
    """Completed execution of one statement.

    Values are left in the server's text encoding. The underlying PGresult
    is released by close(), which the executor calls before returning from
    every extraction method. Callers holding a Result from
    QueryBuilder.execute() should use it as a context manager.
    """

    def __init__(self, pgresult: Any, encoding: str = 'utf-8') -> None:
        self.pgresult = pgresult
        self.encoding = encoding
        self._closed = False

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    def __len__(self) -> int:
        return self.ntuples

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def ntuples(self) -> int:
        """Number of rows returned."""
        return self.pgresult.ntuples

    @property
    def nfields(self) -> int:
        """Number of columns in the result shape."""
        return self.pgresult.nfields

    @property
    def column_names(self) -> list[str]:
        """Column names in result order."""
        return [decode_value(self.pgresult.fname(i), self.encoding)
                for i in range(self.nfields)]

    @property
    def command_status(self) -> str | None:
        """Command tag, e.g. ``UPDATE 3``."""
        return decode_value(self.pgresult.command_status, self.encoding)

    @property
    def rowcount(self) -> int:
        """Rows affected according to the command tag, or -1 if it has none."""
        status = self.command_status or ''
        count = status.rsplit(' ', 1)[-1]
        return int(count) if count.isdigit() else -1

    def rows(self) -> list[Row]:
        """Materialize every row as a column name to value mapping."""
        names = self.column_names
        return [
            {name: decode_value(self.pgresult.get_value(r, c), self.encoding)
             for c, name in enumerate(names)}
            for r in range(self.ntuples)
        ]

    def column(self, name: str) -> list[str | None]:
        """Values of one named column from every row."""
        names = self.column_names
        if name not in names:
            raise InvalidArgument(f'{name} column does not exist in result')
        index = names.index(name)
        return [decode_value(self.pgresult.get_value(r, index), self.encoding)
                for r in range(self.ntuples)]

    def close(self) -> None:
        """Release the PGresult. Safe to call more than once."""
        if not self._closed:
            self.pgresult.clear()
            self._closed = True
