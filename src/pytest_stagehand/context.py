"""Per-test scenario context.

The scenario context is the mutable state of one test case. It bridges
steps to the live application, through a borrowed resolution scope and
a protocol client, and to each other, through an ordered key-value
store. A context belongs to exactly one test; it is never shared by
concurrently running scenarios.
"""

from threading import Lock
from typing import TYPE_CHECKING, Any, overload

from pytest_stagehand.errors import (
    BackgroundAlreadyDeclared,
    ContextInUse,
    DependencyNotRegistered,
    FixtureCorrupted,
    InvalidContextKey,
    MissingContextValue,
    StepRoleError,
)
from pytest_stagehand.names import ISOLATION_HEADER, is_valid_key
from pytest_stagehand.reporting import get_logger
from pytest_stagehand.steps import BackgroundStep

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator
    from logging import Logger, LoggerAdapter
    from types import TracebackType
    from typing import Self

if TYPE_CHECKING:
    from pytest_stagehand.scenario import Scenario
    from pytest_stagehand.scope import DependencyKey, ResolutionScope
    from pytest_stagehand.values import RuntimeValue

#: Sentinel marking a missing client.
_NO_CLIENT: Any = object()


class ScenarioContext:
    """Execution context of one test case.

    The context owns the inter-step value store and the background
    steps; it borrows the resolution scope for the test's duration and
    releases it on `close()`.

    Background steps may be declared once. A second declaration is
    rejected with `BackgroundAlreadyDeclared`, so every scenario built
    from the context runs exactly the setup visible at construction.
    """

    def __init__(self, scope: 'ResolutionScope', *,
                 isolation_key: str,
                 isolation_header: str = ISOLATION_HEADER,
                 client: 'RuntimeValue' = _NO_CLIENT,
                 logger: 'Logger | LoggerAdapter[Logger] | None' = None,
                 background: 'tuple[BackgroundStep, ...] | list[BackgroundStep]' = (),
                 on_corrupted: 'Callable[[str], None] | None' = None) -> None:
        """Initialize a scenario context.

        Args:
            scope: Resolution scope borrowed from the service fixture.
            isolation_key: Key partitioning this test's business data.
            isolation_header: Header name carrying the isolation key.
            client: Client issuing requests through the service's
                external protocol surface.
            logger: Logger sink; defaults to the package logger.
            background: Background steps declared at construction.
            on_corrupted: Called with the reason when a step reports
                that shared fixture state is corrupted.
        """
        self.scope = scope
        self.isolation_key = isolation_key
        self.isolation_header = isolation_header
        self.logger = logger or get_logger('scenario')

        self.on_corrupted = on_corrupted

        self._client = client
        self._values: dict[str, RuntimeValue] = {}
        self._background: tuple[BackgroundStep, ...] = ()
        self._declared = False
        self._running = Lock()
        self._closed = False

        if background:
            self.background(*background)

    @overload
    def resolve[T](self, kind: type[T]) -> T:
        ...  # pragma: no cover

    @overload
    def resolve(self, kind: 'DependencyKey') -> Any:  # noqa: ANN401
        ...  # pragma: no cover

    def resolve(self, kind: Any) -> Any:
        """Fetch a dependency from the live application's scope.

        Args:
            kind: Dependency key, usually a type.

        Returns:
            The resolved dependency.

        Raises:
            DependencyNotRegistered: If the application does not provide it.
        """
        return self.scope.resolve(kind)

    @property
    def client(self) -> 'RuntimeValue':
        """Return the client bound to the service's protocol surface.

        Raises:
            DependencyNotRegistered: If no client was bound.
        """
        if self._client is _NO_CLIENT:
            raise DependencyNotRegistered('client')

        return self._client

    def isolation_headers(self) -> dict[str, str]:
        """Return request headers carrying the isolation key."""
        return {self.isolation_header: self.isolation_key}

    def escalate(self, error: FixtureCorrupted) -> None:
        """Report corrupted shared state to the owner of the fixture.

        Contexts built without an owner have nobody to report to; the
        corruption then only shows in the scenario result.
        """
        if self.on_corrupted is not None:
            self.on_corrupted(error.message)

    def set(self, key: str, value: 'RuntimeValue') -> None:
        """Store a value for later steps.

        A later write to the same key overwrites the previous value.

        Args:
            key: Context key.
            value: Value to store.

        Raises:
            InvalidContextKey: If the key does not follow naming rules.
        """
        if not is_valid_key(key):
            raise InvalidContextKey(f'Invalid context key {key!r}')

        self._values[key] = value

    @overload
    def get[T](self, key: str, kind: type[T]) -> T:
        ...  # pragma: no cover

    @overload
    def get(self, key: str, kind: None = None) -> Any:  # noqa: ANN401
        ...  # pragma: no cover

    def get(self, key: str, kind: Any = None) -> Any:
        """Read a value stored by an earlier step.

        Args:
            key: Context key.
            kind: Optional expected type of the value.

        Returns:
            The stored value.

        Raises:
            MissingContextValue: If the key was never set, or the stored
                value is not an instance of `kind`.
        """
        if key not in self._values:
            raise MissingContextValue(key)

        value = self._values[key]
        if kind is not None and not isinstance(value, kind):
            raise MissingContextValue(key, expected=kind, actual=type(value))

        return value

    def __contains__(self, key: object) -> bool:
        return key in self._values

    def keys(self) -> list[str]:
        """Return stored keys in insertion order."""
        return list(self._values)

    def items(self) -> 'Iterator[tuple[str, RuntimeValue]]':
        """Iterate over stored values in insertion order."""
        yield from self._values.items()

    def background(self, *steps: BackgroundStep) -> 'Self':
        """Declare background steps run before every scenario.

        Args:
            *steps: Background steps, run in declaration order.

        Returns:
            The context itself.

        Raises:
            BackgroundAlreadyDeclared: If background steps were declared.
            StepRoleError: If a step is not a background step.
        """
        if self._declared:
            raise BackgroundAlreadyDeclared('Background steps are already declared')

        for step in steps:
            if not isinstance(step, BackgroundStep):
                raise StepRoleError(
                    f'{type(step).__name__} can not be placed in the background phase',
                )

        self._background = tuple(steps)
        self._declared = True

        return self

    @property
    def background_steps(self) -> tuple[BackgroundStep, ...]:
        """Return declared background steps."""
        return self._background

    def scenario(self, title: str | None = None) -> 'Scenario':
        """Build a scenario bound to this context.

        Args:
            title: Optional human-readable title of the scenario.

        Returns:
            A new scenario with no arrange, act or assert steps.
        """
        from pytest_stagehand.scenario import Scenario  # noqa: PLC0415

        return Scenario(self, title=title)

    def acquire(self) -> None:
        """Mark the context as running a scenario.

        Raises:
            ContextInUse: If another scenario is already running on it.
        """
        if not self._running.acquire(blocking=False):
            raise ContextInUse(
                f'Context {self.isolation_key!r} is already running a scenario',
            )

    def release(self) -> None:
        """Mark the running scenario as finished."""
        self._running.release()

    @property
    def closed(self) -> bool:
        """Whether the context released its scope."""
        return self._closed

    def close(self) -> None:
        """Release the borrowed resolution scope.

        Stored values are dropped; calling `close()` again is a no-op.
        """
        if self._closed:
            return

        self._closed = True
        self._values.clear()
        self.scope.close()

    def __enter__(self) -> 'Self':
        return self

    def __exit__(self, exc_type: type[BaseException] | None,
                 exc_value: BaseException | None,
                 traceback: 'TracebackType | None') -> None:
        self.close()
