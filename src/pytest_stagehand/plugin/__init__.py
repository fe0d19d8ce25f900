"""Pytest plugin running phase-structured scenarios against a live service.

This module integrates `pytest-stagehand` with pytest by:
- registering command-line options and ini keys for the database and
  execution logging;
- resolving runtime settings once per session;
- exposing the session and per-test fixtures;
- reporting infrastructure and authoring errors apart from assertion
  failures, and stopping the session on fixture corruption.
"""

from typing import TYPE_CHECKING

import pytest
from pydantic import ValidationError

from pytest_stagehand.errors import FixtureCorrupted, StagehandError
from pytest_stagehand.executor import classify
from pytest_stagehand.reporting import configure_logging, get_logger, reset_logging
from pytest_stagehand.results import Outcome
from pytest_stagehand.settings import StagehandSettings

from .fixtures import (
    isolation_key,
    stagehand_context,
    stagehand_database,
    stagehand_service,
    stagehand_service_options,
    stagehand_settings,
)

if TYPE_CHECKING:
    from collections.abc import Generator

if TYPE_CHECKING:
    from _pytest.config import Config
    from _pytest.config.argparsing import Parser
    from _pytest.nodes import Item
    from _pytest.reports import TestReport
    from _pytest.runner import CallInfo

__all__ = (
    'isolation_key',
    'stagehand_context',
    'stagehand_database',
    'stagehand_service',
    'stagehand_service_options',
    'stagehand_settings',
)

#: User property carrying the stagehand outcome of a failed test.
OUTCOME_PROPERTY = 'stagehand_outcome'

#: Short letter and verbose word of failures that are not assertion failures.
STATUSES = {
    Outcome.INFRASTRUCTURE_ERROR: ('I', 'INFRA-ERROR'),
    Outcome.AUTHORING_ERROR: ('A', 'AUTHORING-ERROR'),
    Outcome.FIXTURE_ERROR: ('C', 'FIXTURE-ERROR'),
}


def pytest_addoption(parser: 'Parser') -> None:
    """Register pytest command-line options for pytest-stagehand.

    Args:
        parser: Pytest argument parser.
    """
    group = parser.getgroup('stagehand', 'scenario execution against a live service')
    group.addoption(
        '--stagehand-db-engine',
        dest='stagehand_db_engine',
        default=None,
        help='Database engine provisioned for the session (postgres, sqlite).',
    )
    group.addoption(
        '--stagehand-db-image',
        dest='stagehand_db_image',
        default=None,
        help='Container image and version of the database engine.',
    )
    group.addoption(
        '--stagehand-startup-timeout',
        dest='stagehand_startup_timeout',
        type=float,
        default=None,
        help='Seconds to wait for the database to become reachable.',
    )
    group.addoption(
        '--stagehand-log-format',
        dest='stagehand_log_format',
        choices=('text', 'json'),
        default=None,
        help=(
            'Attach a structured handler to the pytest_stagehand logger '
            'rendering execution records as text or JSON lines on stderr.'
        ),
    )

    parser.addini(
        'stagehand_db_engine',
        help='Database engine provisioned for the session.',
    )
    parser.addini(
        'stagehand_db_image',
        help='Container image and version of the database engine.',
    )


def pytest_configure(config: 'Config') -> None:
    """Resolve settings and configure execution logging.

    Command-line options win over ini keys, which win over
    `STAGEHAND_*` environment variables.

    Args:
        config: Pytest configuration object.

    Raises:
        pytest.UsageError: If the resolved settings are invalid.
    """
    try:
        settings = StagehandSettings().merge(
            database_engine=(
                config.getoption('stagehand_db_engine')
                or config.getini('stagehand_db_engine')
                or None
            ),
            database_image=(
                config.getoption('stagehand_db_image')
                or config.getini('stagehand_db_image')
                or None
            ),
            startup_timeout=config.getoption('stagehand_startup_timeout'),
            log_format=config.getoption('stagehand_log_format'),
        )
    except ValidationError as error:
        raise pytest.UsageError(f'Invalid stagehand settings: {error}') from error

    config.stagehand_settings = settings  # type: ignore[attr-defined]
    config.stagehand_service = None  # type: ignore[attr-defined]

    if config.getoption('stagehand_log_format'):
        configure_logging(settings.level, settings.log_format)
    else:
        get_logger().setLevel(settings.level)


def pytest_unconfigure(config: 'Config') -> None:  # noqa: ARG001
    """Detach the structured handler attached at configuration."""
    reset_logging()


@pytest.hookimpl(wrapper=True)
def pytest_runtest_makereport(item: 'Item',
                              call: 'CallInfo[None]') -> 'Generator[None, TestReport, TestReport]':
    """Attach the stagehand outcome to failed reports.

    A `FixtureCorrupted` error additionally marks the service as
    corrupted and stops the session after the current test.
    """
    report = yield

    if call.excinfo is None:
        return report

    error = call.excinfo.value
    if not isinstance(error, (AssertionError, StagehandError)):
        return report

    report.user_properties.append((OUTCOME_PROPERTY, classify(error).value))

    if isinstance(error, FixtureCorrupted):
        service = getattr(item.config, 'stagehand_service', None)
        if service is not None:
            service.mark_corrupted(error.message)
        item.session.shouldstop = f'stagehand: {error.message}'

    return report


def pytest_report_teststatus(report: 'TestReport',
                             config: 'Config') -> tuple[str, str, tuple[str, dict[str, bool]]] | None:  # noqa: ARG001
    """Report failures that are not assertion failures with own status.

    The category stays `failed`, so such tests are still listed in the
    failure summary and fail the session.
    """
    if report.when != 'call' or not report.failed:
        return None

    outcome = dict(report.user_properties).get(OUTCOME_PROPERTY)
    status = STATUSES.get(outcome)  # type: ignore[call-overload]
    if status is None:
        return None

    letter, word = status

    return 'failed', letter, (word, {'red': True})
