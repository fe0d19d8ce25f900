"""Tests for structured execution logging."""

import json
import logging
from typing import TYPE_CHECKING

import pytest

from pytest_stagehand.reporting import (
    LOGGER_NAME,
    RECORD_FIELD,
    StructuredFormatter,
    configure_logging,
    event,
    get_logger,
    reset_logging,
)
from tests.doubles import FailArrange, RecordAct, RecordArrange, RecordAssert, RecordBackground

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from pytest_stagehand.context import ScenarioContext


@pytest.fixture
def restore_logging() -> 'Iterator[None]':
    """Detach handlers attached by a test and restore the level."""
    logger = get_logger()
    level = logger.level

    yield

    reset_logging()
    logger.setLevel(level)


def structured(caplog: pytest.LogCaptureFixture, name: str) -> list[dict[str, object]]:
    """Return structured fields of captured events with a given name."""
    return [
        getattr(record, RECORD_FIELD)
        for record in caplog.records
        if getattr(record, RECORD_FIELD, {}).get('event') == name
    ]


def make_record(message: str = 'step passed', **fields: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name=f'{LOGGER_NAME}.scenario',
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=(),
        exc_info=None,
    )
    setattr(record, RECORD_FIELD, fields)

    return record


def test_get_logger() -> None:
    """Loggers live below the package logger."""
    assert get_logger().name == LOGGER_NAME
    assert get_logger('service').name == f'{LOGGER_NAME}.service'


def test_step_events(make_context: 'Callable[..., ScenarioContext]',
                     caplog: pytest.LogCaptureFixture) -> None:
    """Every executed step is logged with phase, index, timing and outcome."""
    context = make_context(background=[RecordBackground(label='b')], isolation_key='tenant-a')

    with caplog.at_level(logging.DEBUG, logger=LOGGER_NAME):
        (
            context.scenario('logged')
            .arrange(RecordArrange(label='a'))
            .act(RecordAct(label='c'))
            .assert_(RecordAssert(label='s'))
            .verify()
        )

    steps = structured(caplog, 'step')

    assert [(fields['phase'], fields['index'], fields['outcome']) for fields in steps] == [
        ('background', 0, 'passed'),
        ('arrange', 0, 'passed'),
        ('act', 0, 'passed'),
        ('assert', 0, 'passed'),
    ]
    assert all(fields['scenario'] == 'logged' for fields in steps)
    assert all(fields['isolation_key'] == 'tenant-a' for fields in steps)
    assert all(isinstance(fields['elapsed'], float) for fields in steps)
    assert steps[1]['config'] == {'label': 'a'}

    assert len(structured(caplog, 'step.start')) == 4
    assert [fields['phase'] for fields in structured(caplog, 'phase.enter')] == [
        'background', 'arrange', 'act', 'assert',
    ]

    (finished,) = structured(caplog, 'scenario.finish')
    assert finished['outcome'] == 'passed'


def test_failure_is_logged_as_error(make_context: 'Callable[..., ScenarioContext]',
                                    caplog: pytest.LogCaptureFixture) -> None:
    """Failed steps log at error level; skipped phases are not entered."""
    context = make_context()

    with caplog.at_level(logging.INFO, logger=LOGGER_NAME):
        context.scenario().arrange(FailArrange()).act(RecordAct(label='c')).run()

    (failed,) = structured(caplog, 'step')

    assert failed['outcome'] == 'failed'
    assert 'arrangement failed' in str(failed['error'])
    assert [
        record.levelno
        for record in caplog.records
        if getattr(record, RECORD_FIELD, {}).get('event') == 'step'
    ] == [logging.ERROR]
    assert [fields['phase'] for fields in structured(caplog, 'phase.enter')] == [
        'background', 'arrange',
    ]


def test_text_format() -> None:
    """Text records render ordered key=value pairs, dropping empty fields."""
    formatter = StructuredFormatter('%(message)s')

    line = formatter.format(make_record(
        error=None,
        elapsed=0.5,
        step='Create event',
        event='step',
        phase='act',
        config={'name': 'Tech Conference'},
    ))

    assert line == (
        'step passed event=step phase=act step="Create event" '
        'elapsed=0.500000 config={"name":"Tech Conference"}'
    )


def test_json_format() -> None:
    """JSON records are one object per line."""
    formatter = StructuredFormatter(style='json')

    line = formatter.format(make_record(event='step', phase='assert', index=2, outcome='failed'))

    assert json.loads(line) == {
        'level': 'INFO',
        'logger': f'{LOGGER_NAME}.scenario',
        'message': 'step passed',
        'event': 'step',
        'phase': 'assert',
        'index': 2,
        'outcome': 'failed',
    }


def test_plain_records_are_untouched() -> None:
    """Records without structured fields use the base format."""
    record = make_record('plain')
    delattr(record, RECORD_FIELD)

    assert StructuredFormatter('%(levelname)s %(message)s').format(record) == 'INFO plain'


@pytest.mark.usefixtures('restore_logging')
def test_configure_logging_replaces_handler() -> None:
    """Reconfiguring never attaches duplicate handlers."""
    logger = get_logger()

    first = configure_logging(logging.DEBUG, handler=logging.NullHandler())
    second = configure_logging('WARNING', 'json', handler=logging.NullHandler())

    assert first not in logger.handlers
    assert second in logger.handlers
    assert logger.level == logging.WARNING
    assert isinstance(second.formatter, StructuredFormatter)
    assert second.formatter.style == 'json'

    reset_logging()
    reset_logging()

    assert second not in logger.handlers


@pytest.mark.usefixtures('restore_logging')
def test_event_reaches_handler(caplog: pytest.LogCaptureFixture) -> None:
    """Structured fields travel through `extra`."""
    with caplog.at_level(logging.INFO, logger=LOGGER_NAME):
        event(get_logger('service'), 'service fixture is ready', event='service.ready')

    (record,) = caplog.records

    assert record.getMessage() == 'service fixture is ready'
    assert getattr(record, RECORD_FIELD) == {'event': 'service.ready'}
