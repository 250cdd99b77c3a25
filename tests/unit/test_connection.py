from unittest.mock import MagicMock

import psycopg
import pytest
import sqlalchemy as sa
from pgstatement.builders import InsertBuilder, UpdateBuilder
from pgstatement.connection import ConnectionWrapper, check_connection, connect
from pgstatement.connection import create_url_from_options, dispose_all_engines
from pgstatement.connection import get_engine_for_options
from pgstatement.exceptions import ConnectionFailure
from pgstatement.options import DatabaseOptions
from pgstatement.query import QueryBuilder


@pytest.fixture
def options():
    return DatabaseOptions(hostname='db', username='u', password='p',
                           database='app', timeout=5, appname='tests')


@pytest.fixture(autouse=True)
def clear_engines():
    dispose_all_engines()
    yield
    dispose_all_engines()


def _dbapi_connection(fake_pgconn):
    dbapi = MagicMock()
    dbapi.driver_connection.pgconn = fake_pgconn
    dbapi.driver_connection.info.encoding = 'utf-8'
    return dbapi


def test_create_url_from_options(options):
    url = create_url_from_options(options)
    assert url.drivername == 'postgresql+psycopg'
    assert url.host == 'db'
    assert url.port == 5432
    assert url.database == 'app'
    assert url.query['connect_timeout'] == '5'
    assert url.query['application_name'] == 'tests'


def test_engine_registry_reuses_engines(options):
    factory = MagicMock()
    first = get_engine_for_options(options, engine_factory=factory)
    second = get_engine_for_options(options, engine_factory=factory)
    assert first is second
    assert factory.call_count == 1
    kwargs = factory.call_args.kwargs
    assert kwargs['isolation_level'] == 'AUTOCOMMIT'
    assert kwargs['poolclass'] is sa.pool.NullPool


def test_engine_with_pool(options):
    options.use_pool = True
    factory = MagicMock()
    get_engine_for_options(options, engine_factory=factory)
    kwargs = factory.call_args.kwargs
    assert 'poolclass' not in kwargs
    assert kwargs['pool_size'] == options.pool_size
    assert kwargs['pool_pre_ping'] is True


def test_dispose_all_engines(options):
    factory = MagicMock()
    engine = get_engine_for_options(options, engine_factory=factory)
    dispose_all_engines()
    engine.dispose.assert_called_once()
    get_engine_for_options(options, engine_factory=factory)
    assert factory.call_count == 2


class TestCheckConnection:

    def test_retries_then_succeeds(self):
        attempts = []

        @check_connection(max_retries=3, retry_delay=0, sleep_func=lambda _: None)
        def flaky():
            attempts.append(1)
            if len(attempts) < 3:
                raise psycopg.OperationalError('connection refused')
            return 'ok'

        assert flaky() == 'ok'
        assert len(attempts) == 3

    def test_gives_up(self):
        sleeps = []

        @check_connection(max_retries=2, retry_delay=1, retry_backoff=2, sleep_func=sleeps.append)
        def down():
            raise psycopg.OperationalError('could not connect')

        with pytest.raises(psycopg.OperationalError):
            down()
        assert sleeps == [1]

    def test_other_errors_not_retried(self):
        attempts = []

        @check_connection(sleep_func=lambda _: None)
        def broken():
            attempts.append(1)
            raise KeyError('x')

        with pytest.raises(KeyError):
            broken()
        assert len(attempts) == 1


class TestConnect:

    def test_connect_returns_wrapper(self, options, fake_pgconn):
        engine = MagicMock()
        engine.raw_connection.return_value = _dbapi_connection(fake_pgconn)
        cn = connect(options, engine_factory=lambda url, **kw: engine)
        assert isinstance(cn, ConnectionWrapper)
        assert cn.pgconn is fake_pgconn
        assert cn.options is options

    def test_connect_from_kwargs(self, fake_pgconn):
        engine = MagicMock()
        engine.raw_connection.return_value = _dbapi_connection(fake_pgconn)
        cn = connect(database='app', engine_factory=lambda url, **kw: engine)
        assert cn.options.database == 'app'

    def test_connect_failure(self, options, monkeypatch):
        monkeypatch.setattr('pgstatement.connection.check_connection',
                            lambda f: check_connection(f, sleep_func=lambda _: None))
        engine = MagicMock()
        engine.raw_connection.side_effect = psycopg.OperationalError('could not connect')
        with pytest.raises(ConnectionFailure):
            connect(options, engine_factory=lambda url, **kw: engine)
        assert engine.raw_connection.call_count == 3

    def test_connect_without_retry(self, options):
        options.check_connection = False
        engine = MagicMock()
        engine.raw_connection.side_effect = psycopg.OperationalError('could not connect')
        with pytest.raises(ConnectionFailure):
            connect(options, engine_factory=lambda url, **kw: engine)
        assert engine.raw_connection.call_count == 1


class TestConnectionWrapper:

    def test_builders_bound_to_connection(self, fake_pgconn):
        cn = ConnectionWrapper(_dbapi_connection(fake_pgconn))
        q = cn.query('select $1', 1)
        assert isinstance(q, QueryBuilder)
        assert q.cn is cn
        assert q.parameters == [1]
        assert isinstance(cn.insert('t'), InsertBuilder)
        update = cn.update('t', 'id', 1)
        assert isinstance(update, UpdateBuilder)
        assert update.where_value == 1

    def test_statistics(self, fake_pgconn):
        cn = ConnectionWrapper(_dbapi_connection(fake_pgconn))
        fake_pgconn.queue_command()
        fake_pgconn.queue_rows([{'a': '1'}])
        cn.query('update t set a = 1').execute().close()
        assert cn.query('select 1 as a').execute_all() == [{'a': '1'}]
        assert cn.calls == 2
        assert cn.encoding == 'utf-8'

    def test_close(self, fake_pgconn):
        dbapi = _dbapi_connection(fake_pgconn)
        with ConnectionWrapper(dbapi) as cn:
            assert not cn.closed
        assert cn.closed
        dbapi.close.assert_called_once()
        cn.close()
        dbapi.close.assert_called_once()
