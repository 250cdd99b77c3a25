import importlib

import pytest

# Leaves first: each module may only import the ones above it
MODULES = [
    'pgstatement.exceptions',
    'pgstatement.types',
    'pgstatement.result',
    'pgstatement.options',
    'pgstatement.query',
    'pgstatement.builders',
    'pgstatement.schema',
    'pgstatement.connection',
    'pgstatement',
]


@pytest.mark.parametrize('module', MODULES)
def test_module_imports(module):
    """Each module imports cleanly without circular dependencies"""
    assert importlib.import_module(module)


def test_core_does_not_import_connection_layer():
    """The builder and executor only need a handle, never the engine layer"""
    for module in ('pgstatement.query', 'pgstatement.builders', 'pgstatement.result'):
        source = importlib.import_module(module).__file__
        with open(source) as f:
            text = f.read()
        assert 'pgstatement.connection' not in text
        assert 'sqlalchemy' not in text
