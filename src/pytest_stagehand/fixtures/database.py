"""Disposable real database engines.

A database fixture provisions one isolated instance of the database
engine the application uses in production, waits until it accepts
connections, and exposes a `ConnectionDescriptor` consumed by the
service fixture. Teardown destroys the instance unconditionally,
including after a startup that failed partway through.
"""

from abc import ABC, abstractmethod
from pathlib import Path
from secrets import token_urlsafe
from shutil import rmtree
from tempfile import mkdtemp
from time import monotonic, sleep
from typing import TYPE_CHECKING, ClassVar

from pydantic import Field, SecretStr
from sqlalchemy import URL, create_engine, text
from sqlalchemy.pool import NullPool
from testcontainers.postgres import PostgresContainer

from pytest_stagehand.errors import FixtureNotStarted, ProvisioningError
from pytest_stagehand.models import SchemaModel
from pytest_stagehand.reporting import event, get_logger

if TYPE_CHECKING:
    from logging import Logger
    from types import TracebackType
    from typing import Self

if TYPE_CHECKING:
    from pytest_stagehand.settings import StagehandSettings

POSTGRES_PORT = 5432


class ConnectionDescriptor(SchemaModel):
    """Address, credentials and schema name of a provisioned database."""

    drivername: str = Field(
        title='Driver name',
        description='SQLAlchemy dialect and driver, e.g. `postgresql+psycopg`.',
    )
    host: str | None = None
    port: int | None = None
    username: str | None = None
    password: SecretStr | None = None
    database: str | None = Field(
        default=None,
        title='Database name',
        description='Database (schema) name, or file path for file engines.',
    )

    def to_url(self) -> URL:
        """Build an SQLAlchemy URL object."""
        return URL.create(
            self.drivername,
            username=self.username,
            password=self.password.get_secret_value() if self.password else None,
            host=self.host,
            port=self.port,
            database=self.database,
        )

    @property
    def url(self) -> str:
        """Return the connection URL, password included."""
        return self.to_url().render_as_string(hide_password=False)

    @property
    def safe_url(self) -> str:
        """Return the connection URL with the password masked."""
        return self.to_url().render_as_string(hide_password=True)


class DatabaseFixture(ABC):
    """Lifecycle of one disposable database instance.

    Subclasses implement `provision` and `release`; the base class
    enforces the bounded readiness wait and the release of partially
    acquired resources.
    """

    #: Engine name used in settings.
    engine: ClassVar[str]

    def __init__(self, *, startup_timeout: float = 60.0,
                 poll_interval: float = 0.5,
                 logger: 'Logger | None' = None) -> None:
        """Initialize a database fixture.

        Args:
            startup_timeout: Seconds to wait for the engine to accept connections.
            poll_interval: Seconds between reachability probes.
            logger: Logger for lifecycle events.
        """
        self.startup_timeout = startup_timeout
        self.poll_interval = poll_interval
        self.logger = logger or get_logger('database')

        self._descriptor: ConnectionDescriptor | None = None
        self._acquired = False

    @classmethod
    def from_settings(cls, settings: 'StagehandSettings') -> 'Self':
        """Build a fixture from runtime settings."""
        return cls(
            startup_timeout=settings.startup_timeout,
            poll_interval=settings.poll_interval,
        )

    @abstractmethod
    def provision(self) -> ConnectionDescriptor:
        """Acquire the database instance.

        Implementations must record acquired resources before any step
        that may fail, so that `release` can free them.
        """

    @abstractmethod
    def release(self) -> None:
        """Destroy the database instance; must tolerate partial provisioning."""

    def probe(self, descriptor: ConnectionDescriptor) -> None:
        """Check that the database accepts connections and queries.

        Raises:
            Exception: Any driver error while connecting.
        """
        engine = create_engine(descriptor.url, poolclass=NullPool)
        try:
            with engine.connect() as connection:
                connection.execute(text('SELECT 1'))
        finally:
            engine.dispose()

    def wait_until_ready(self, descriptor: ConnectionDescriptor, *,
                         deadline: float | None = None) -> None:
        """Probe the database until it responds or the deadline passes.

        Args:
            descriptor: Connection descriptor of the database.
            deadline: `monotonic()` instant after which probing stops;
                `startup_timeout` from now when omitted.

        Raises:
            ProvisioningError: If the database is not reachable in time.
        """
        if deadline is None:
            deadline = monotonic() + self.startup_timeout

        attempts = 0

        while True:
            attempts += 1
            try:
                self.probe(descriptor)
                return

            except Exception as error:
                if monotonic() + self.poll_interval > deadline:
                    raise ProvisioningError(
                        f'Database {descriptor.safe_url} is not reachable '
                        f'after {attempts} attempts within {self.startup_timeout}s: {error!r}',
                    ) from error

            sleep(self.poll_interval)

    @property
    def started(self) -> bool:
        """Whether the database is provisioned and reachable."""
        return self._descriptor is not None

    @property
    def descriptor(self) -> ConnectionDescriptor:
        """Return the connection descriptor.

        Raises:
            FixtureNotStarted: If the database was not started.
        """
        if self._descriptor is None:
            raise FixtureNotStarted(f'Database fixture {self.engine!r} is not started')

        return self._descriptor

    def start(self) -> ConnectionDescriptor:
        """Provision the database and wait until it is reachable.

        `startup_timeout` bounds the whole startup, provisioning
        included: the readiness probe gives up once it has elapsed
        since the call, however long provisioning took.

        Returns:
            Connection descriptor of the ready database.

        Raises:
            ProvisioningError: If provisioning fails or times out; any
                partially acquired resource is released first.
        """
        if self._descriptor is not None:
            return self._descriptor

        event(self.logger, f'provisioning {self.engine} database', event='database.start')

        deadline = monotonic() + self.startup_timeout
        self._acquired = True

        try:
            descriptor = self.provision()
            self.wait_until_ready(descriptor, deadline=deadline)

        except Exception as error:
            try:
                self.release()
            except Exception as cleanup:  # noqa: BLE001
                error.add_note(f'Release after failed startup also failed: {cleanup!r}')

            self._acquired = False

            if isinstance(error, ProvisioningError):
                raise

            raise ProvisioningError(
                f'Database {self.engine!r} failed to start: {error!r}',
            ) from error

        self._descriptor = descriptor

        event(
            self.logger, f'{self.engine} database is ready',
            event='database.ready',
            url=descriptor.safe_url,
        )

        return descriptor

    def stop(self) -> None:
        """Destroy the database instance; safe to call repeatedly.

        Release always runs; the release event is only logged once per
        started instance.
        """
        self._descriptor = None
        acquired, self._acquired = self._acquired, False

        self.release()

        if not acquired:
            return

        event(self.logger, f'{self.engine} database released', event='database.stop')

    def __enter__(self) -> 'Self':
        self.start()
        return self

    def __exit__(self, exc_type: type[BaseException] | None,
                 exc_value: BaseException | None,
                 traceback: 'TracebackType | None') -> None:
        self.stop()


class PostgresDatabase(DatabaseFixture):
    """Disposable PostgreSQL server running in a container.

    `PostgresContainer.start()` blocks on the readiness wait of
    testcontainers, configured through its own settings (`TC_MAX_TRIES`,
    `TC_POOLING_INTERVAL`) and not interruptible from here. The time it
    takes counts against `startup_timeout`, so a slow container leaves
    the connection probe a single attempt.
    """

    engine: ClassVar[str] = 'postgres'

    def __init__(self, image: str = 'postgres:16-alpine', *,
                 username: str = 'stagehand',
                 password: str | None = None,
                 dbname: str = 'stagehand',
                 driver: str = 'psycopg',
                 **kwargs: 'float | Logger | None') -> None:
        """Initialize a PostgreSQL fixture.

        Args:
            image: Container image and version of the server.
            username: Superuser name.
            password: Superuser password; random when omitted.
            dbname: Database created at startup.
            driver: SQLAlchemy driver for the `postgresql` dialect.
            **kwargs: Base fixture arguments.
        """
        super().__init__(**kwargs)  # type: ignore[arg-type]

        self.image = image
        self.username = username
        self.password = password or token_urlsafe(16)
        self.dbname = dbname
        self.driver = driver

        self.container: PostgresContainer | None = None

    @classmethod
    def from_settings(cls, settings: 'StagehandSettings') -> 'Self':
        return cls(
            settings.database_image,
            startup_timeout=settings.startup_timeout,
            poll_interval=settings.poll_interval,
        )

    def provision(self) -> ConnectionDescriptor:
        self.container = PostgresContainer(
            self.image,
            port=POSTGRES_PORT,
            username=self.username,
            password=self.password,
            dbname=self.dbname,
            driver=None,
        )
        self.container.start()

        return ConnectionDescriptor(
            drivername=f'postgresql+{self.driver}',
            host=self.container.get_container_host_ip(),
            port=int(self.container.get_exposed_port(POSTGRES_PORT)),
            username=self.username,
            password=SecretStr(self.password),
            database=self.dbname,
        )

    def release(self) -> None:
        container, self.container = self.container, None
        if container is not None:
            container.stop()


class SQLiteDatabase(DatabaseFixture):
    """Disposable SQLite database file in a private temporary directory.

    Suitable for applications running SQLite in production; the file
    lives for the session and its directory is removed at teardown.
    """

    engine: ClassVar[str] = 'sqlite'

    filename = 'stagehand.sqlite3'

    def __init__(self, **kwargs: 'float | Logger | None') -> None:
        super().__init__(**kwargs)  # type: ignore[arg-type]

        self.directory: Path | None = None

    def provision(self) -> ConnectionDescriptor:
        self.directory = Path(mkdtemp(prefix='stagehand-'))

        return ConnectionDescriptor(
            drivername='sqlite',
            database=str(self.directory / self.filename),
        )

    def release(self) -> None:
        directory, self.directory = self.directory, None
        if directory is not None:
            rmtree(directory, ignore_errors=True)


DATABASE_ENGINES: dict[str, type[DatabaseFixture]] = {
    PostgresDatabase.engine: PostgresDatabase,
    SQLiteDatabase.engine: SQLiteDatabase,
}


def create_database(settings: 'StagehandSettings') -> DatabaseFixture:
    """Build the database fixture selected by settings.

    Raises:
        ProvisioningError: If the engine name is unknown.
    """
    fixture = DATABASE_ENGINES.get(settings.database_engine)
    if fixture is None:
        known = ', '.join(sorted(DATABASE_ENGINES))
        raise ProvisioningError(
            f'Unknown database engine {settings.database_engine!r}, expected one of: {known}',
        )

    return fixture.from_settings(settings)
