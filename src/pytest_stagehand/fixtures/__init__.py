"""Shared session fixtures: the live service and its database.

Fixtures are provisioned once per session and shared by every test.
Provisioning failures raise `ProvisioningError` and are never retried
by the fixtures themselves.
"""

from .clock import Clock, FrozenClock, SystemClock
from .database import (
    DATABASE_ENGINES,
    ConnectionDescriptor,
    DatabaseFixture,
    PostgresDatabase,
    SQLiteDatabase,
    create_database,
)
from .service import (
    APPLICATION,
    CLIENT,
    DESCRIPTOR,
    ServiceFixture,
    ServiceOptions,
    Substitution,
    asgi_client,
)

__all__ = (
    'APPLICATION',
    'CLIENT',
    'DATABASE_ENGINES',
    'DESCRIPTOR',
    'Clock',
    'ConnectionDescriptor',
    'DatabaseFixture',
    'FrozenClock',
    'PostgresDatabase',
    'SQLiteDatabase',
    'ServiceFixture',
    'ServiceOptions',
    'Substitution',
    'SystemClock',
    'asgi_client',
    'create_database',
)
