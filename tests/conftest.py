"""Tests configurations and fixtures."""

from datetime import UTC, datetime
from typing import TYPE_CHECKING

import pytest

from pytest_stagehand.context import ScenarioContext
from pytest_stagehand.fixtures import Clock, FrozenClock, ServiceOptions
from pytest_stagehand.scope import DependencyScope
from tests.app import Notifier, RecordingNotifier, create_app

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

if TYPE_CHECKING:
    from pytest_stagehand.fixtures.service import AppFactory

pytest_plugins = ('pytester',)

#: Moment the substituted clock is frozen at.
FROZEN_AT = datetime(2025, 10, 1, 9, 30, tzinfo=UTC)


@pytest.fixture(scope='session')
def frozen_clock() -> FrozenClock:
    """Clock stand-in shared by the live sample service."""
    return FrozenClock(FROZEN_AT)


@pytest.fixture(scope='session')
def notifier() -> RecordingNotifier:
    """Notifier stand-in recording outbound messages per tenant."""
    return RecordingNotifier()


@pytest.fixture(scope='session')
def stagehand_service_options(frozen_clock: FrozenClock,
                              notifier: RecordingNotifier) -> ServiceOptions:
    """Substitute wall-clock time and outbound notifications."""
    return (
        ServiceOptions()
        .substitute(Clock, frozen_clock)
        .substitute(Notifier, notifier)
    )


@pytest.fixture(scope='session')
def stagehand_app_factory() -> 'AppFactory':
    """Build the sample events service."""
    return create_app


@pytest.fixture
def root_scope() -> DependencyScope:
    """Provide an empty root dependency scope."""
    return DependencyScope()


@pytest.fixture
def make_context(root_scope: DependencyScope) -> 'Iterator[Callable[..., ScenarioContext]]':
    """Provide a factory of detached scenario contexts.

    Contexts are built on a fresh resolution scope of `root_scope`, without
    a live service, and closed at teardown.
    """
    contexts: list[ScenarioContext] = []

    def make(**options: object) -> ScenarioContext:
        options.setdefault('isolation_key', f'test-{len(contexts)}')
        context = ScenarioContext(root_scope.open_scope(), **options)  # type: ignore[arg-type]
        contexts.append(context)
        return context

    yield make

    for context in contexts:
        context.close()
