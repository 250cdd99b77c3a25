"""
PostgreSQL connection handling with SQLAlchemy.

This module provides:
1. The `connect()` function for acquiring a connection handle
2. The `ConnectionWrapper` class that hands out statement builders bound to it
3. Engine creation and management through a thread-safe registry

Statements run outside any transaction block (the engines use AUTOCOMMIT),
so each executed statement takes effect on its own. Connection acquisition
is retried on transient errors; statements never are.
"""
import atexit
import logging
import threading
import time
from collections.abc import Callable
from functools import wraps
from typing import Any, Self, TypeVar

import sqlalchemy as sa
from pgstatement.builders import InsertBuilder, UpdateBuilder
from pgstatement.exceptions import ConnectionFailure, DbConnectionError
from pgstatement.options import DatabaseOptions
from pgstatement.query import QueryBuilder
from pgstatement.types import Param
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

__all__ = [
    'ConnectionWrapper',
    'connect',
    'check_connection',
    'create_url_from_options',
    'get_engine_for_options',
    'dispose_all_engines',
]

logger = logging.getLogger(__name__)

T = TypeVar('T')
_engine_registry: dict[str, Engine] = {}
_engine_registry_lock = threading.RLock()


def create_url_from_options(options: DatabaseOptions,
                            url_creator: Callable[..., sa.URL] = sa.URL.create) -> sa.URL:
    """Convert DatabaseOptions to SQLAlchemy URL.
    """
    query = {'application_name': options.appname}
    if options.timeout:
        query['connect_timeout'] = str(options.timeout)

    return url_creator(
        drivername='postgresql+psycopg',
        username=options.username,
        password=options.password,
        host=options.hostname,
        port=options.port,
        database=options.database,
        query=query
    )


def check_connection(func: Callable[..., T] | None = None, *, max_retries: int = 3,
                     retry_delay: float = 1, retry_errors: type | tuple[type, ...] | None = None,
                     retry_backoff: float = 1.5,
                     sleep_func: Callable[[float], None] = time.sleep) -> Callable[..., T]:
    """Connection retry decorator with backoff.

    Retries the wrapped call on connection errors, sleeping between attempts
    with exponential backoff. Supports both @check_connection and
    @check_connection() syntax.
    """
    def decorator(f: Callable[..., T]) -> Callable[..., T]:
        @wraps(f)
        def inner(*args: Any, **kwargs: Any) -> T:
            error_types = retry_errors if retry_errors is not None else DbConnectionError

            tries = 0
            delay = retry_delay
            while tries < max_retries:
                try:
                    return f(*args, **kwargs)
                except error_types as err:
                    tries += 1
                    if tries >= max_retries:
                        logger.error(f'Maximum retries ({max_retries}) exceeded: {err}')
                        raise
                    logger.warning(f'Connection error (attempt {tries}/{max_retries}): {err}')
                    sleep_func(delay)
                    delay *= retry_backoff

        return inner

    if func is None:
        return decorator
    return decorator(func)


def get_engine_for_options(options: DatabaseOptions,
                           engine_factory: Callable[..., Engine] = sa.create_engine,
                           **kwargs: Any) -> Engine:
    """Get or create a SQLAlchemy engine for the given options.
    """
    key = repr(options)

    with _engine_registry_lock:
        if key in _engine_registry:
            logger.debug(f'Using existing engine for {options}')
            return _engine_registry[key]

        url = create_url_from_options(options)

        engine_kwargs: dict[str, Any] = {'echo': False, 'isolation_level': 'AUTOCOMMIT'}

        if not options.use_pool:
            engine_kwargs['poolclass'] = NullPool
        else:
            engine_kwargs['pool_size'] = options.pool_size
            engine_kwargs['pool_recycle'] = options.pool_recycle
            engine_kwargs['pool_timeout'] = options.pool_timeout
            engine_kwargs['max_overflow'] = 10
            engine_kwargs['pool_pre_ping'] = True

        engine_kwargs.update(kwargs)

        engine = engine_factory(url, **engine_kwargs)

        _engine_registry[key] = engine
        logger.debug(f'Created new engine for {options}')

        return engine


def dispose_all_engines() -> None:
    """Dispose all engines in the registry.
    """
    with _engine_registry_lock:
        for engine in list(_engine_registry.values()):
            engine.dispose()
        _engine_registry.clear()
        logger.debug('All database engines disposed')


atexit.register(dispose_all_engines)


class ConnectionWrapper:
    """Connection handle that statement builders execute against.

    Wraps a DBAPI connection checked out from a SQLAlchemy engine and
    exposes the libpq connection behind it. Tracks the number of statements
    run and the time spent in them. The wrapper does no locking: share it
    between threads only with external serialization.
    """

    def __init__(self, dbapi_connection: Any, options: DatabaseOptions | None = None) -> None:
        self.dbapi_connection = dbapi_connection
        self.options = options
        self.calls = 0
        self.time = 0

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    @property
    def driver_connection(self) -> Any:
        """The psycopg Connection behind the pool proxy."""
        return getattr(self.dbapi_connection, 'driver_connection', self.dbapi_connection)

    @property
    def pgconn(self) -> Any:
        """The libpq connection statements are dispatched on."""
        return self.driver_connection.pgconn

    @property
    def encoding(self) -> str:
        """Python codec matching the client encoding."""
        return self.driver_connection.info.encoding

    @property
    def closed(self) -> bool:
        return self.dbapi_connection is None

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        self.time += elapsed
        self.calls += 1

    def query(self, sql: str | None = None, *params: Param) -> QueryBuilder:
        """New statement builder on this connection, seeded like append()."""
        return QueryBuilder(self, sql, *params)

    def insert(self, table: str) -> InsertBuilder:
        """New INSERT builder on this connection."""
        return InsertBuilder(self, table)

    def update(self, table: str, where_column: str, where_value: Param) -> UpdateBuilder:
        """New UPDATE builder on this connection."""
        return UpdateBuilder(self, table, where_column, where_value)

    def close(self) -> None:
        """Return the connection to its engine."""
        if self.dbapi_connection is not None:
            self.dbapi_connection.close()
            self.dbapi_connection = None
            logger.debug(f'Connection closed: {self.calls} queries in {self.time:.2f}s '
                         f'(avg: {self.time/max(1, self.calls):.3f}s per query)')


def connect(options: DatabaseOptions | None = None, config: Any = None,
            engine_factory: Callable[..., Engine] = sa.create_engine,
            **kwargs: Any) -> ConnectionWrapper:
    """Acquire a connection handle.

    Options come from a DatabaseOptions instance, or from ``config`` (see
    DatabaseOptions.from_config) with keyword overrides, or from keyword
    arguments alone.
    """
    if options is None:
        if config is not None:
            options = DatabaseOptions.from_config(config, **kwargs)
        else:
            options = DatabaseOptions(**kwargs)

    engine = get_engine_for_options(options, engine_factory=engine_factory)

    def acquire() -> Any:
        return engine.raw_connection()

    if options.check_connection:
        acquire = check_connection(acquire)

    try:
        dbapi_connection = acquire()
    except DbConnectionError as err:
        raise ConnectionFailure(f'Postgres connection failure: {options}') from err

    cn = ConnectionWrapper(dbapi_connection, options)
    logger.debug(f'Connected to {options}')
    return cn
