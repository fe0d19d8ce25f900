"""Live service fixture.

The service fixture owns one running instance of the application under
test for a whole session. Internal collaborators stay real; boundary
collaborators (external APIs, wall-clock time) are substituted with
test-controlled stand-ins registered as dependency overrides.

Startup sequence, each step fatal to the session on failure:

1. provision the database fixture;
2. obtain its connection descriptor;
3. register substitutions and construct the application;
4. open the protocol client and materialize the dependency graph.

Teardown reverses the order and runs even after a partial startup.
"""

from contextlib import ExitStack
from threading import RLock
from typing import TYPE_CHECKING, Any
from uuid import uuid4

from pydantic import Field
from starlette.testclient import TestClient

from pytest_stagehand.context import ScenarioContext
from pytest_stagehand.errors import FixtureCorrupted, FixtureNotStarted, ProvisioningError
from pytest_stagehand.models import SchemaModel
from pytest_stagehand.names import ISOLATION_HEADER
from pytest_stagehand.reporting import event, get_logger
from pytest_stagehand.scope import DependencyScope, Lifetime

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from contextlib import AbstractContextManager
    from logging import Logger
    from types import TracebackType
    from typing import Self

if TYPE_CHECKING:
    from pytest_stagehand.fixtures.database import ConnectionDescriptor, DatabaseFixture
    from pytest_stagehand.scope import DependencyKey
    from pytest_stagehand.steps import BackgroundStep
    from pytest_stagehand.values import RuntimeValue

#: Builds the application from a connection descriptor, registering
#: its collaborators in the root dependency scope.
type AppFactory = Callable[[ConnectionDescriptor, DependencyScope], RuntimeValue]

#: Opens a client bound to the application's external protocol surface.
type ClientFactory = Callable[[RuntimeValue], AbstractContextManager[RuntimeValue]]

#: Dependency keys under which the fixture registers its own objects.
APPLICATION = 'stagehand.application'
CLIENT = 'stagehand.client'
DESCRIPTOR = 'stagehand.database'


def asgi_client(app: 'RuntimeValue') -> TestClient:
    """Open an HTTP client driving an ASGI application in-process.

    Requests go through the application's real routing, validation,
    serialization and lifespan handlers.
    """
    return TestClient(app, raise_server_exceptions=False)


class Substitution(SchemaModel):
    """Boundary collaborator replaced with a test-controlled stand-in."""

    key: Any = Field(
        title='Dependency key',
        description='Type or token the application resolves.',
    )
    stand_in: Any = Field(
        title='Stand-in',
        description='Replacement instance, or factory when `factory` is set.',
    )
    factory: bool = False
    lifetime: Lifetime = Lifetime.SINGLETON


class ServiceOptions(SchemaModel):
    """Enumerable configuration of the service fixture."""

    substitutions: tuple[Substitution, ...] = ()

    isolation_header: str = Field(
        default=ISOLATION_HEADER,
        title='Isolation header',
        description='Request header carrying the per-test isolation key.',
    )

    def substitute(self, key: 'DependencyKey', stand_in: 'RuntimeValue', *,
                   factory: bool = False,
                   lifetime: Lifetime = Lifetime.SINGLETON) -> 'ServiceOptions':
        """Return options with one more substitution."""
        return self.with_(substitutions=(
            *self.substitutions,
            Substitution(key=key, stand_in=stand_in, factory=factory, lifetime=lifetime),
        ))


class ServiceFixture:
    """Lifecycle of one live instance of the application under test.

    The fixture is shared by every test of a session. Contexts created
    through `new_context` borrow private resolution scopes from its root
    scope, so concurrently running tests never share scoped state.
    """

    def __init__(self, app_factory: AppFactory, *,
                 database: 'DatabaseFixture',
                 options: ServiceOptions | None = None,
                 client_factory: ClientFactory = asgi_client,
                 logger: 'Logger | None' = None) -> None:
        """Initialize a service fixture.

        Args:
            app_factory: Builds the application with its real wiring.
            database: Database fixture owned by this service fixture.
            options: Substitutions and isolation settings.
            client_factory: Opens the protocol client for the application.
            logger: Logger for lifecycle events.
        """
        self.app_factory = app_factory
        self.database = database
        self.options = options or ServiceOptions()
        self.client_factory = client_factory
        self.logger = logger or get_logger('service')

        self.scope = DependencyScope()

        self._lock = RLock()
        self._stack: ExitStack | None = None
        self._app: RuntimeValue = None
        self._client: RuntimeValue = None
        self._corrupted: str | None = None

    @property
    def started(self) -> bool:
        """Whether the application is running."""
        return self._stack is not None

    @property
    def app(self) -> 'RuntimeValue':
        """Return the running application."""
        self._ensure_started()
        return self._app

    @property
    def client(self) -> 'RuntimeValue':
        """Return the client bound to the application's protocol surface."""
        self._ensure_started()
        return self._client

    def _ensure_started(self) -> None:
        if self._stack is None:
            raise FixtureNotStarted('Service fixture is not started')

    def start(self) -> 'Self':
        """Start the database and the application.

        Returns:
            The started fixture.

        Raises:
            ProvisioningError: If any startup step fails; everything
                acquired so far is released first.
        """
        with self._lock:
            if self._stack is not None:
                return self

            event(self.logger, 'starting service fixture', event='service.start')

            with ExitStack() as stack:
                stack.callback(self._reset)

                stack.callback(self.database.stop)
                descriptor = self.database.start()

                try:
                    self._app, self._client = self._build(descriptor, stack)
                except ProvisioningError:
                    raise
                except Exception as error:
                    raise ProvisioningError(
                        f'Service failed to start: {error!r}',
                    ) from error

                self._stack = stack.pop_all()

            event(self.logger, 'service fixture is ready', event='service.ready')

            return self

    def _build(self, descriptor: 'ConnectionDescriptor',
               stack: ExitStack) -> tuple['RuntimeValue', 'RuntimeValue']:
        """Construct the application, open its client and warm it up."""
        self.scope.register(DESCRIPTOR, descriptor)

        for substitution in self.options.substitutions:
            self.scope.override(
                substitution.key,
                substitution.stand_in,
                factory=substitution.factory,
                lifetime=substitution.lifetime,
            )

        app = self.app_factory(descriptor, self.scope)
        self.scope.register(APPLICATION, app)

        client = stack.enter_context(self.client_factory(app))
        self.scope.register(CLIENT, client)

        self.scope.materialize()

        return app, client

    def _reset(self) -> None:
        self._app = None
        self._client = None
        self.scope = DependencyScope()

    def stop(self) -> None:
        """Stop the application and the database; safe to call repeatedly."""
        with self._lock:
            stack, self._stack = self._stack, None
            if stack is None:
                return

            stack.close()

        event(self.logger, 'service fixture stopped', event='service.stop')

    def mark_corrupted(self, reason: str) -> None:
        """Flag shared state as untrustworthy; later contexts are refused.

        Contexts created by `new_context` call this when one of their
        steps raises `FixtureCorrupted`. The first reason is kept.
        """
        with self._lock:
            if self._corrupted is not None:
                return

            self._corrupted = reason

        event(self.logger, f'service fixture corrupted: {reason}', event='service.corrupted')

    @property
    def corrupted(self) -> str | None:
        """Return the corruption reason, if any."""
        return self._corrupted

    def new_context(self, isolation_key: str | None = None, *,
                    background: 'Iterable[BackgroundStep]' = (),
                    logger: 'Logger | None' = None) -> ScenarioContext:
        """Create a context for one test.

        Args:
            isolation_key: Key partitioning the test's business data;
                a random one is generated when omitted.
            background: Background steps of the context.
            logger: Logger sink of the context.

        Returns:
            A context borrowing a fresh resolution scope.

        Raises:
            FixtureNotStarted: If the fixture is not started.
            FixtureCorrupted: If shared state was marked as corrupted.
        """
        with self._lock:
            self._ensure_started()
            if self._corrupted is not None:
                raise FixtureCorrupted(f'Service fixture is corrupted: {self._corrupted}')

            scope = self.scope.open_scope()

        return ScenarioContext(
            scope,
            isolation_key=isolation_key or uuid4().hex,
            isolation_header=self.options.isolation_header,
            client=self._client,
            logger=logger,
            background=tuple(background),
            on_corrupted=self.mark_corrupted,
        )

    def __enter__(self) -> 'Self':
        return self.start()

    def __exit__(self, exc_type: type[BaseException] | None,
                 exc_value: BaseException | None,
                 traceback: 'TracebackType | None') -> None:
        self.stop()
