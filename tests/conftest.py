import logging

import pytest

pytest_plugins = [
    'tests.fixtures.mocks',
    'tests.fixtures.postgres',
]


@pytest.fixture(autouse=True)
def debug_logging(caplog):
    """Capture pgstatement debug logging for every test."""
    caplog.set_level(logging.DEBUG, logger='pgstatement')
