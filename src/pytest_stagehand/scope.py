"""Dependency resolution scopes.

The service under test registers its collaborators in a
`DependencyScope` owned by the service fixture. Tests never reach the
scope through global state: each scenario context borrows a
`ResolutionScope` opened from the root for the duration of one test.

Boundary substitutions are registered as overrides. An override always
wins over a regular registration, whatever the registration order, so
the application can wire its real collaborators unconditionally while
tests still control time and outbound clients.
"""

from collections.abc import Callable, Hashable
from enum import StrEnum
from threading import RLock
from typing import TYPE_CHECKING, Any, overload

from pytest_stagehand.errors import DependencyNotRegistered

if TYPE_CHECKING:
    from pytest_stagehand.values import RuntimeValue

#: Dependencies are keyed by type or by an explicit hashable token.
type DependencyKey = Hashable

#: A factory receives the scope it resolves in.
type Factory = Callable[['ResolutionScope | DependencyScope'], RuntimeValue]

#: Teardown callback registered by a scoped factory.
type Finalizer = Callable[[], None]


class Lifetime(StrEnum):
    """How long a provided instance lives."""

    #: One instance per root scope, shared by every test.
    SINGLETON = 'singleton'
    #: One instance per resolution scope, private to one test.
    SCOPED = 'scoped'
    #: A new instance per resolution.
    TRANSIENT = 'transient'


class Provider:
    """Registered source of one dependency."""

    __slots__ = ('factory', 'instance', 'lifetime')

    def __init__(self, *, lifetime: Lifetime,
                 factory: Factory | None = None,
                 instance: 'RuntimeValue' = None) -> None:
        self.lifetime = lifetime
        self.factory = factory
        self.instance = instance

    @property
    def built(self) -> bool:
        """Whether a singleton instance is already available."""
        return self.factory is None


class DependencyScope:
    """Root registry of application dependencies.

    The root scope is shared by all tests of a session. Registration
    happens while the service fixture starts; resolution may happen
    concurrently from many resolution scopes afterwards, guarded by a
    re-entrant lock.
    """

    def __init__(self) -> None:
        self._lock = RLock()
        self._providers: dict[DependencyKey, Provider] = {}
        self._overrides: dict[DependencyKey, Provider] = {}

    def register(self, key: DependencyKey, instance: 'RuntimeValue') -> None:
        """Register a ready instance as a singleton.

        Args:
            key: Dependency key, usually the type consumers resolve.
            instance: Instance to provide.
        """
        with self._lock:
            self._providers[key] = Provider(
                lifetime=Lifetime.SINGLETON,
                instance=instance,
            )

    def register_factory(self, key: DependencyKey, factory: Factory, *,
                         lifetime: Lifetime | str = Lifetime.SINGLETON) -> None:
        """Register a factory building the dependency lazily.

        Args:
            key: Dependency key, usually the type consumers resolve.
            factory: Callable receiving the resolving scope.
            lifetime: Lifetime of built instances.
        """
        with self._lock:
            self._providers[key] = Provider(
                lifetime=Lifetime(lifetime),
                factory=factory,
            )

    def override(self, key: DependencyKey, stand_in: 'RuntimeValue', *,
                 factory: bool = False,
                 lifetime: Lifetime | str = Lifetime.SINGLETON) -> None:
        """Substitute a dependency with a test-controlled stand-in.

        Args:
            key: Dependency key to substitute.
            stand_in: Replacement instance, or factory if `factory` is set.
            factory: Treat `stand_in` as a factory.
            lifetime: Lifetime of instances built by a stand-in factory.
        """
        with self._lock:
            if factory:
                provider = Provider(lifetime=Lifetime(lifetime), factory=stand_in)
            else:
                provider = Provider(lifetime=Lifetime.SINGLETON, instance=stand_in)
            self._overrides[key] = provider

    def is_overridden(self, key: DependencyKey) -> bool:
        """Check whether a dependency is substituted."""
        with self._lock:
            return key in self._overrides

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._overrides or key in self._providers

    def provider(self, key: DependencyKey) -> Provider:
        """Return the effective provider of a dependency.

        Raises:
            DependencyNotRegistered: If nothing provides the key.
        """
        with self._lock:
            provider = self._overrides.get(key) or self._providers.get(key)

        if provider is None:
            raise DependencyNotRegistered(key)

        return provider

    @overload
    def resolve[T](self, key: type[T]) -> T:
        ...  # pragma: no cover

    @overload
    def resolve(self, key: DependencyKey) -> Any:  # noqa: ANN401
        ...  # pragma: no cover

    def resolve(self, key: Any) -> Any:
        """Resolve a singleton or transient dependency from the root.

        Scoped dependencies can only be resolved from a resolution scope.

        Raises:
            DependencyNotRegistered: If nothing provides the key, or the
                key is scoped.
        """
        provider = self.provider(key)
        if provider.lifetime is Lifetime.SCOPED:
            raise DependencyNotRegistered(key)

        return self.build(provider, self)

    def build(self, provider: Provider,
              scope: 'ResolutionScope | DependencyScope') -> 'RuntimeValue':
        """Build or return the instance of a singleton or transient provider."""
        if provider.lifetime is Lifetime.TRANSIENT:
            return provider.factory(scope)  # type: ignore[misc]

        with self._lock:
            if not provider.built:
                provider.instance = provider.factory(self)  # type: ignore[misc]
                provider.factory = None
            return provider.instance

    def materialize(self) -> None:
        """Build every singleton eagerly.

        Triggers first-use initialization so that a broken dependency
        graph fails the fixture startup instead of the first test.
        Substituted registrations are never built.
        """
        with self._lock:
            providers = [
                *self._overrides.values(),
                *(
                    provider
                    for key, provider in self._providers.items()
                    if key not in self._overrides
                ),
            ]

        for provider in providers:
            if provider.lifetime is Lifetime.SINGLETON:
                self.build(provider, self)

    def open_scope(self) -> 'ResolutionScope':
        """Open a resolution scope for one test."""
        return ResolutionScope(self)


class ResolutionScope:
    """Per-test view on a root dependency scope.

    Scoped dependencies are cached here, never in the root, so two tests
    running concurrently never observe each other's scoped instances.
    """

    def __init__(self, root: DependencyScope) -> None:
        self.root = root
        self.closed = False

        self._lock = RLock()
        self._instances: dict[DependencyKey, RuntimeValue] = {}
        self._finalizers: list[Finalizer] = []

    @overload
    def resolve[T](self, key: type[T]) -> T:
        ...  # pragma: no cover

    @overload
    def resolve(self, key: DependencyKey) -> Any:  # noqa: ANN401
        ...  # pragma: no cover

    def resolve(self, key: Any) -> Any:
        """Resolve a dependency.

        Raises:
            DependencyNotRegistered: If nothing provides the key.
        """
        provider = self.root.provider(key)
        if provider.lifetime is not Lifetime.SCOPED:
            return self.root.build(provider, self)

        with self._lock:
            if key not in self._instances:
                self._instances[key] = provider.factory(self)  # type: ignore[misc]
            return self._instances[key]

    def __contains__(self, key: object) -> bool:
        return key in self.root

    def on_close(self, finalizer: Finalizer) -> None:
        """Register a callback run when the scope is closed."""
        with self._lock:
            self._finalizers.append(finalizer)

    def close(self) -> None:
        """Release scoped instances, running finalizers in reverse order."""
        with self._lock:
            if self.closed:
                return
            self.closed = True
            finalizers, self._finalizers = self._finalizers, []
            self._instances.clear()

        for finalizer in reversed(finalizers):
            finalizer()
