"""End-to-end scenarios against the live sample events service."""

from concurrent.futures import ThreadPoolExecutor
from typing import TYPE_CHECKING

import pytest

from pytest_stagehand.builtins import ExpectJson, ExpectStatus, ExpectValue, SendRequest, SetValue
from pytest_stagehand.results import Outcome
from pytest_stagehand.steps import Phase
from tests.app.steps import CreateEvent, ExpectEventStored, ExpectNotified, SeedEvent, SeedUser
from tests.conftest import FROZEN_AT

if TYPE_CHECKING:
    from pytest_stagehand.context import ScenarioContext
    from pytest_stagehand.fixtures import ServiceFixture
    from pytest_stagehand.results import ScenarioResult


def test_create_event(stagehand_context: 'ScenarioContext') -> None:
    """A created event is returned, stored and announced."""
    result = (
        stagehand_context
        .background(SeedUser())
        .scenario('create an event')
        .act(CreateEvent(name='Tech Conference'))
        .assert_(
            ExpectStatus(status=201),
            ExpectJson(path='name', match='Tech Conference'),
            ExpectJson(
                match={
                    'starts_on': '2025-10-15',
                    'created_at': FROZEN_AT.isoformat(),
                },
                partial=True,
            ),
            ExpectEventStored(name='Tech Conference'),
            ExpectNotified(messages=("Event 'Tech Conference' created",)),
        )
        .verify()
    )

    assert [record.phase for record in result.executed()] == [
        Phase.BACKGROUND,
        Phase.ACT,
        *[Phase.ASSERT] * 5,
    ]


def test_duplicate_event_name(stagehand_context: 'ScenarioContext') -> None:
    """A second event with the same name is rejected and not stored."""
    (
        stagehand_context
        .background(SeedUser())
        .scenario('duplicate event name')
        .arrange(SeedEvent(name='Tech Conference'))
        .act(CreateEvent(name='Tech Conference'))
        .assert_(
            ExpectStatus(status=409),
            ExpectJson(path='error.code', match='EVENT-NAME-ALREADY-EXISTS'),
            ExpectEventStored(name='Tech Conference', count=1),
        )
        .verify()
    )


def test_unknown_owner(stagehand_context: 'ScenarioContext') -> None:
    """Events of unknown owners are rejected as unprocessable."""
    (
        stagehand_context
        .scenario('unknown owner')
        .arrange(SetValue(key='user_id', value=999_999))
        .act(CreateEvent(name='Orphan'))
        .assert_(
            ExpectStatus(status=422),
            ExpectJson(path='error.code', match='OWNER-NOT-FOUND'),
            ExpectEventStored(name='Orphan', count=0),
            ExpectNotified(),
        )
        .verify()
    )


def test_generic_request_steps(stagehand_context: 'ScenarioContext') -> None:
    """Builtin request steps drive the service through its HTTP surface."""
    (
        stagehand_context
        .scenario('register and list')
        .act(SendRequest(method='POST', path='/users', body={'name': 'Bob'}, output='created'))
        .assert_(
            ExpectStatus(status=201, source='created'),
            ExpectJson(path='name', match='Bob', source='created'),
        )
        .verify()
    )

    response = stagehand_context.get('created')

    (
        stagehand_context
        .scenario('read back')
        .arrange(SetValue(key='owner_id', value=response.json()['id']))
        .act(SendRequest(method='GET', path='/events'))
        .assert_(
            ExpectStatus(),
            ExpectJson(match=[]),
            ExpectValue(key='owner_id', match=response.json()['id']),
        )
        .verify()
    )


def test_path_placeholders(stagehand_context: 'ScenarioContext') -> None:
    """Request paths are filled from context values."""
    context = stagehand_context.background(SeedUser())

    context.scenario('seed').arrange(SeedEvent(name='Meetup')).verify()
    context.set('event_id', context.get('seeded_event', dict)['id'])

    (
        context
        .scenario('fetch by id')
        .act(SendRequest(path='/events/{event_id}'))
        .assert_(
            ExpectStatus(status=200),
            ExpectJson(match={'name': 'Meetup', 'owner_id': context.get('user_id')}, partial=True),
        )
        .verify()
    )


def test_tenants_are_isolated(stagehand_service: 'ServiceFixture',
                              stagehand_context: 'ScenarioContext') -> None:
    """Data created under one isolation key is invisible under another."""
    (
        stagehand_context
        .background(SeedUser())
        .scenario('seed tenant a')
        .arrange(SeedEvent(name='Private'))
        .verify()
    )

    with stagehand_service.new_context() as other:
        (
            other
            .scenario('tenant b sees nothing')
            .act(SendRequest(path='/events'))
            .assert_(ExpectStatus(status=200), ExpectJson(match=[]))
            .verify()
        )


def test_failed_expectation_is_reported(stagehand_context: 'ScenarioContext') -> None:
    """A wrong expectation fails with the step and its location."""
    scenario = (
        stagehand_context
        .background(SeedUser())
        .scenario('expects the wrong status')
        .act(CreateEvent(name='Tech Conference'))
        .assert_(ExpectStatus(status=200), ExpectEventStored(name='Tech Conference'))
    )

    result = scenario.run()

    assert result.outcome is Outcome.FAILED
    assert result.failure is not None
    assert result.failure.step == 'ExpectStatus'
    assert result.records[-1].outcome is Outcome.NOT_RUN

    with pytest.raises(AssertionError, match='Unexpected response status') as excinfo:
        result.raise_for_outcome()

    assert f'[{stagehand_context.isolation_key}]' in str(excinfo.value)
    assert 'on assert phase, step 1 (ExpectStatus)' in str(excinfo.value)


@pytest.mark.parametrize('attempt', range(50))
def test_same_scenario_in_isolation(stagehand_context: 'ScenarioContext', attempt: int) -> None:
    """Repeated runs of one scenario never collide on shared names."""
    (
        stagehand_context
        .background(SeedUser(name=f'User {attempt}'))
        .scenario('create an event')
        .act(CreateEvent(name='Tech Conference'))
        .assert_(ExpectStatus(status=201), ExpectEventStored(name='Tech Conference'))
        .verify()
    )


def test_concurrent_scenarios(stagehand_service: 'ServiceFixture') -> None:
    """Scenarios running concurrently stay isolated from each other."""
    def run(_: int) -> 'ScenarioResult':
        with stagehand_service.new_context() as context:
            return (
                context
                .background(SeedUser())
                .scenario('create concurrently')
                .act(CreateEvent(name='Tech Conference'))
                .assert_(
                    ExpectStatus(status=201),
                    ExpectEventStored(name='Tech Conference'),
                    ExpectNotified(messages=("Event 'Tech Conference' created",)),
                )
                .run()
            )

    with ThreadPoolExecutor(max_workers=4) as pool:
        results = list(pool.map(run, range(16)))

    assert [result.outcome for result in results] == [Outcome.PASSED] * 16
    assert len({result.isolation_key for result in results}) == 16
