import logging

import pgstatement as pg
import pytest

from tests import config

logger = logging.getLogger(__name__)


@pytest.fixture(scope='session')
def psql_docker(request):
    """Session-scoped PostgreSQL container using testcontainers.

    Skips the requesting tests when testcontainers or Docker is not
    available.
    """
    postgres = pytest.importorskip('testcontainers.postgres')
    container = postgres.PostgresContainer(
        image='postgres:16',
        username=config.postgresql.username,
        password=config.postgresql.password,
        dbname=config.postgresql.database,
    )

    try:
        container.start()
    except Exception as e:
        pytest.skip(f'PostgreSQL container unavailable: {e}')

    config.postgresql.hostname = container.get_container_host_ip()
    config.postgresql.port = int(container.get_exposed_port(5432))
    logger.info(
        f'PostgreSQL container started at '
        f'{config.postgresql.hostname}:{config.postgresql.port}'
    )

    def finalizer():
        try:
            container.stop()
            logger.info('PostgreSQL container stopped')
        except Exception as e:
            logger.warning(f'Error stopping container: {e}')
        pg.connection.dispose_all_engines()

    request.addfinalizer(finalizer)
    return container


def stage_test_data(cn):
    pg.query(cn, 'drop table if exists test_table').execute().close()
    pg.query(cn, """
create table test_table (
    id serial primary key,
    name varchar(255) not null unique,
    value integer,
    active boolean not null default true,
    note text
)
""").execute().close()
    pg.query(cn, """
insert into test_table (name, value, note) values
('Alice', 10, 'first'),
('Bob', 20, null),
('Charlie', 30, null),
('Ethan', 50, 'fifth'),
('Fiona', 70, null),
('George', 80, null)
""").execute().close()


@pytest.fixture
def pg_conn(psql_docker):
    """Connection with freshly staged test_table for each test.
    """
    cn = pg.connect(config=config)
    try:
        stage_test_data(cn)
        yield cn
    finally:
        cn.close()
