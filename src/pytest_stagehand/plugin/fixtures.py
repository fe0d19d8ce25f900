"""Session and per-test fixtures exposed by the pytest plugin.

The database and the service are provisioned once per session. A
provisioning failure stops the whole session through `pytest.exit`,
so it is reported once instead of as an error on every test.

Projects provide one fixture themselves, `stagehand_app_factory`,
building the application from a connection descriptor; overriding
`stagehand_service_options` declares boundary substitutions.
"""

from typing import TYPE_CHECKING, NoReturn
from uuid import uuid4

import pytest

from pytest_stagehand.errors import ProvisioningError
from pytest_stagehand.fixtures import ServiceFixture, ServiceOptions, create_database
from pytest_stagehand.reporting import get_logger

if TYPE_CHECKING:
    from collections.abc import Iterator

if TYPE_CHECKING:
    from pytest_stagehand.context import ScenarioContext
    from pytest_stagehand.fixtures import DatabaseFixture
    from pytest_stagehand.fixtures.service import AppFactory
    from pytest_stagehand.settings import StagehandSettings


def abort_session(error: ProvisioningError) -> NoReturn:
    """Stop the session after a shared fixture failed to provision."""
    pytest.exit(f'stagehand: {type(error).__name__}: {error.message}')


@pytest.fixture(scope='session')
def stagehand_settings(pytestconfig: pytest.Config) -> 'StagehandSettings':
    """Settings resolved from environment, ini keys and options."""
    return pytestconfig.stagehand_settings  # type: ignore[attr-defined,no-any-return]


@pytest.fixture(scope='session')
def stagehand_database(stagehand_settings: 'StagehandSettings') -> 'Iterator[DatabaseFixture]':
    """Disposable database shared by the session.

    The database is destroyed at session teardown, whatever the
    outcome of the tests.
    """
    try:
        database = create_database(stagehand_settings)
        database.start()
    except ProvisioningError as error:
        abort_session(error)

    try:
        yield database
    finally:
        database.stop()


@pytest.fixture(scope='session')
def stagehand_service_options() -> ServiceOptions:
    """Service options; override to declare substitutions."""
    return ServiceOptions()


@pytest.fixture(scope='session')
def stagehand_service(pytestconfig: pytest.Config,
                      stagehand_app_factory: 'AppFactory',
                      stagehand_database: 'DatabaseFixture',
                      stagehand_service_options: ServiceOptions) -> 'Iterator[ServiceFixture]':
    """Live application shared by the session."""
    service = ServiceFixture(
        stagehand_app_factory,
        database=stagehand_database,
        options=stagehand_service_options,
    )

    try:
        service.start()
    except ProvisioningError as error:
        abort_session(error)

    pytestconfig.stagehand_service = service  # type: ignore[attr-defined]
    try:
        yield service
    finally:
        pytestconfig.stagehand_service = None  # type: ignore[attr-defined]
        service.stop()


@pytest.fixture
def isolation_key() -> str:
    """Random key partitioning the business data of one test."""
    return uuid4().hex


@pytest.fixture
def stagehand_context(request: pytest.FixtureRequest,
                      stagehand_service: ServiceFixture,
                      isolation_key: str) -> 'Iterator[ScenarioContext]':
    """Scenario context of one test, released at teardown.

    A step reporting corrupted shared state marks the service as
    corrupted even when the scenario result is never raised; the
    session then stops after the current test.
    """
    context = stagehand_service.new_context(
        isolation_key,
        logger=get_logger('scenario'),
    )

    with context:
        yield context

    if stagehand_service.corrupted is not None:
        request.session.shouldstop = f'stagehand: {stagehand_service.corrupted}'
