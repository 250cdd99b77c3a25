import os
import sys
from collections.abc import Mapping
from dataclasses import dataclass, fields
from typing import Any, Self

__all__ = ['DatabaseOptions']


def scriptname() -> str | None:
    """Name of the running script without extension, if there is one."""
    name = os.path.basename(sys.argv[0]) if sys.argv and sys.argv[0] else ''
    return os.path.splitext(name)[0] or None


@dataclass
class DatabaseOptions:
    """Options

    supported driver names: `postgresql`

    Connection pooling options:
    - use_pool: Whether to use connection pooling (default: False)
    - pool_size: Connections kept in the pool (default: 5)
    - pool_recycle: Seconds before a pooled connection is replaced (default: 300)
    - pool_timeout: Seconds to wait for a pooled connection (default: 30)
    """
    drivername: str = 'postgresql'
    hostname: str = None
    username: str = None
    password: str = None
    database: str = None
    port: int = 5432
    timeout: int = 0
    appname: str = None
    check_connection: bool = True
    # Connection pooling parameters
    use_pool: bool = False
    pool_size: int = 5
    pool_recycle: int = 300
    pool_timeout: int = 30

    def __post_init__(self):
        if self.drivername != 'postgresql':
            raise ValueError(f'drivername must be one of: postgresql, got {self.drivername}')
        if not self.database:
            raise ValueError('database option is required')
        if self.port is not None and not 0 < int(self.port) < 65536:
            raise ValueError(f'port out of range: {self.port}')
        if self.timeout and self.timeout < 0:
            raise ValueError('timeout must not be negative')
        self.appname = self.appname or scriptname() or 'python_console'

    def __str__(self) -> str:
        return (f'{self.drivername}://{self.username}@{self.hostname}:{self.port}'
                f'/{self.database}')

    @classmethod
    def from_config(cls, config: Any, section: str = 'postgresql', **overrides: Any) -> Self:
        """Build options from a settings object, module or mapping.

        ``config.<section>`` (or ``config[section]``) supplies the values;
        keyword overrides win. Unknown settings are ignored.
        """
        settings = config[section] if isinstance(config, Mapping) else getattr(config, section)
        names = {f.name for f in fields(cls)}
        values = {}
        for name in names:
            if isinstance(settings, Mapping):
                if name in settings:
                    values[name] = settings[name]
            elif hasattr(settings, name):
                values[name] = getattr(settings, name)
        values.update({k: v for k, v in overrides.items() if k in names})
        return cls(**values)
