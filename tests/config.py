from types import SimpleNamespace

postgresql = SimpleNamespace(
    drivername='postgresql',
    hostname='localhost',
    username='postgres',
    password='postgres',
    database='test_db',
    port=5432,
    timeout=30,
    use_pool=False,
    )
