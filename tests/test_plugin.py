"""Tests for the pytest plugin integration."""

import pytest

SETTINGS_TEST = """
def test_settings(stagehand_settings):
    assert stagehand_settings.database_engine == 'sqlite'
    assert stagehand_settings.database_image == 'postgres:15'
    assert stagehand_settings.startup_timeout == 3
"""

STATUS_TESTS = """
from pytest_stagehand.errors import (
    ExpectationFailed,
    InfrastructureError,
    MissingContextValue,
)

def test_assertion():
    raise ExpectationFailed('wrong status', expected=201, observed=409)

def test_infrastructure():
    raise InfrastructureError('connection reset')

def test_authoring():
    raise MissingContextValue('user_id')

def test_passing():
    pass
"""

SERVICE_TESTS = """
def test_first(stagehand_context):
    pass

def test_second(stagehand_context):
    pass
"""


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Drop stagehand variables inherited from the outer environment."""
    for name in ('STAGEHAND_DATABASE_ENGINE', 'STAGEHAND_DATABASE_IMAGE', 'STAGEHAND_STARTUP_TIMEOUT'):
        monkeypatch.delenv(name, raising=False)


def test_settings_precedence(pytester: pytest.Pytester, monkeypatch: pytest.MonkeyPatch) -> None:
    """Options win over ini keys, which win over the environment."""
    monkeypatch.setenv('STAGEHAND_DATABASE_ENGINE', 'postgres')
    monkeypatch.setenv('STAGEHAND_DATABASE_IMAGE', 'postgres:14')
    monkeypatch.setenv('STAGEHAND_STARTUP_TIMEOUT', '3')

    pytester.makeini("""
        [pytest]
        stagehand_db_engine = sqlite
        stagehand_db_image = postgres:13
    """)
    pytester.makepyfile(SETTINGS_TEST)

    result = pytester.runpytest('--stagehand-db-image', 'postgres:15')

    result.assert_outcomes(passed=1)


def test_invalid_option_is_usage_error(pytester: pytest.Pytester) -> None:
    """Invalid settings are rejected before collection."""
    pytester.makepyfile(SETTINGS_TEST)

    result = pytester.runpytest('--stagehand-startup-timeout', '-1')

    assert result.ret == pytest.ExitCode.USAGE_ERROR
    result.stderr.fnmatch_lines(['*Invalid stagehand settings*'])


def test_failure_statuses(pytester: pytest.Pytester) -> None:
    """Infrastructure and authoring errors are reported apart from assertions."""
    pytester.makepyfile(STATUS_TESTS)

    result = pytester.runpytest('-v')

    result.assert_outcomes(failed=3, passed=1)
    result.stdout.fnmatch_lines([
        '*::test_assertion FAILED*',
        '*::test_infrastructure INFRA-ERROR*',
        '*::test_authoring AUTHORING-ERROR*',
        '*::test_passing PASSED*',
    ])


def test_short_letters(pytester: pytest.Pytester) -> None:
    """Progress output uses dedicated letters."""
    pytester.makepyfile(STATUS_TESTS)

    result = pytester.runpytest()

    result.stdout.fnmatch_lines(['*FIA.*'])


def test_fixture_corruption_stops_session(pytester: pytest.Pytester) -> None:
    """A corrupted fixture aborts the rest of the session."""
    pytester.makepyfile("""
        from pytest_stagehand.errors import FixtureCorrupted

        def test_corrupting():
            raise FixtureCorrupted('shared state was wiped')

        def test_never_runs():
            pass
    """)

    result = pytester.runpytest('-v')

    assert result.ret == pytest.ExitCode.INTERRUPTED
    result.assert_outcomes(failed=1)
    result.stdout.fnmatch_lines(['*::test_corrupting FIXTURE-ERROR*'])
    result.stdout.no_fnmatch_line('*test_never_runs*')


def test_unraised_corruption_stops_session(pytester: pytest.Pytester) -> None:
    """Corruption reported by a step stops the session even if never raised."""
    pytester.makeini("""
        [pytest]
        stagehand_db_engine = sqlite
    """)
    pytester.makeconftest("""
        import pytest
        from starlette.applications import Starlette

        @pytest.fixture(scope='session')
        def stagehand_app_factory():
            return lambda descriptor, scope: Starlette()
    """)
    pytester.makepyfile("""
        from pytest_stagehand.errors import FixtureCorrupted
        from pytest_stagehand.results import Outcome
        from pytest_stagehand.steps import ActStep

        class DropTables(ActStep):
            def execute(self, context, logger):
                raise FixtureCorrupted('tables were dropped')

        def test_corrupting(stagehand_context):
            result = stagehand_context.scenario().act(DropTables()).run()
            assert result.outcome is Outcome.FIXTURE_ERROR

        def test_never_runs(stagehand_context):
            pass
    """)

    result = pytester.runpytest('-v')

    assert result.ret == pytest.ExitCode.INTERRUPTED
    result.assert_outcomes(passed=1)
    result.stdout.fnmatch_lines(['*stagehand: tables were dropped*'])
    result.stdout.no_fnmatch_line('*test_never_runs*')


def test_unknown_engine_aborts_once(pytester: pytest.Pytester) -> None:
    """A database that can not be provisioned stops the session once."""
    pytester.makeini("""
        [pytest]
        stagehand_db_engine = oracle
    """)
    pytester.makeconftest("""
        import pytest

        @pytest.fixture(scope='session')
        def stagehand_app_factory():
            return lambda descriptor, scope: object()
    """)
    pytester.makepyfile(SERVICE_TESTS)

    result = pytester.runpytest()

    assert result.ret == pytest.ExitCode.INTERRUPTED
    assert result.stdout.str().count("Unknown database engine 'oracle'") == 1
    result.stdout.fnmatch_lines(['*stagehand: ProvisioningError*'])


def test_broken_application_aborts(pytester: pytest.Pytester) -> None:
    """A service that fails to start stops the session and frees the database."""
    pytester.makeini("""
        [pytest]
        stagehand_db_engine = sqlite
    """)
    pytester.makeconftest("""
        import pytest

        def build(descriptor, scope):
            raise RuntimeError('bad wiring')

        @pytest.fixture(scope='session')
        def stagehand_app_factory():
            return build
    """)
    pytester.makepyfile(SERVICE_TESTS)

    result = pytester.runpytest()

    assert result.ret == pytest.ExitCode.INTERRUPTED
    assert result.stdout.str().count('bad wiring') == 1
    result.stdout.fnmatch_lines(['*stagehand: ProvisioningError: Service failed to start*'])


def test_live_service(pytester: pytest.Pytester) -> None:
    """Contexts reach a live application through the bound client."""
    pytester.makeini("""
        [pytest]
        stagehand_db_engine = sqlite
    """)
    pytester.makeconftest("""
        import pytest
        from starlette.applications import Starlette
        from starlette.requests import Request
        from starlette.responses import JSONResponse
        from starlette.routing import Route

        async def whoami(request: Request) -> JSONResponse:
            return JSONResponse({'tenant': request.headers['x-isolation-key']})

        @pytest.fixture(scope='session')
        def stagehand_app_factory():
            return lambda descriptor, scope: Starlette(routes=[Route('/whoami', whoami)])
    """)
    pytester.makepyfile("""
        from pytest_stagehand.builtins import ExpectJson, ExpectStatus, SendRequest

        def test_whoami(stagehand_context, isolation_key):
            (
                stagehand_context
                .scenario('who am i')
                .act(SendRequest(path='/whoami'))
                .assert_(ExpectStatus(status=200), ExpectJson(path='tenant', match=isolation_key))
                .verify()
            )
    """)

    result = pytester.runpytest('--stagehand-log-format', 'json')

    result.assert_outcomes(passed=1)
