"""Structured execution logging.

The executor emits one log record per scenario boundary, phase entry
and step. Each record carries its structured fields under the
`stagehand` attribute (passed through `extra`), and
`StructuredFormatter` renders them as `key=value` pairs or as one JSON
object per line for machine consumption.
"""

import logging
from json import dumps
from typing import TYPE_CHECKING, Any, Literal

from pytest_stagehand.values import represent

if TYPE_CHECKING:
    from collections.abc import Mapping

LOGGER_NAME = 'pytest_stagehand'

#: Name of the `LogRecord` attribute holding structured fields.
RECORD_FIELD = 'stagehand'

#: Field order of rendered records; unknown fields follow in insertion order.
FIELD_ORDER = (
    'event',
    'scenario',
    'isolation_key',
    'phase',
    'index',
    'step',
    'steps',
    'outcome',
    'elapsed',
    'config',
    'error',
)

type LogFormat = Literal['text', 'json']


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a logger below the package logger."""
    if not name:
        return logging.getLogger(LOGGER_NAME)

    return logging.getLogger(f'{LOGGER_NAME}.{name}')


def event(logger: 'logging.Logger | logging.LoggerAdapter[logging.Logger]',
          message: str, level: int = logging.INFO, **fields: Any) -> None:  # noqa: ANN401
    """Emit a structured event.

    Args:
        logger: Logger to emit through.
        message: Human-readable message.
        level: Logging level.
        **fields: Structured event fields.
    """
    logger.log(level, message, extra={RECORD_FIELD: fields})


def _ordered(fields: 'Mapping[str, Any]') -> dict[str, Any]:
    """Order structured fields for stable rendering, dropping empty ones."""
    ordered = {
        name: fields[name]
        for name in FIELD_ORDER
        if fields.get(name) is not None
    }
    ordered.update({
        name: value
        for name, value in fields.items()
        if name not in ordered and value is not None
    })

    return ordered


class StructuredFormatter(logging.Formatter):
    """Logging formatter rendering structured stagehand records.

    Records without structured fields are rendered by the base
    formatter unchanged.
    """

    def __init__(self, fmt: str | None = None, *,
                 style: LogFormat = 'text') -> None:
        """Initialize the formatter.

        Args:
            fmt: Base format string for the message prefix.
            style: Rendering of structured fields, `text` or `json`.
        """
        super().__init__(fmt)
        self.style = style

    def format(self, record: logging.LogRecord) -> str:
        """Format a record with its structured fields, if any."""
        fields = getattr(record, RECORD_FIELD, None)
        if not isinstance(fields, dict):
            return super().format(record)

        data = _ordered(represent(fields))  # type: ignore[arg-type]

        if self.style == 'json':
            return dumps({
                'level': record.levelname,
                'logger': record.name,
                'message': record.getMessage(),
                **data,
            }, ensure_ascii=False, default=str)

        pairs = ' '.join(
            f'{name}={self._render(value)}'
            for name, value in data.items()
        )

        return f'{super().format(record)} {pairs}'

    @staticmethod
    def _render(value: Any) -> str:  # noqa: ANN401
        """Render a single field value for text output."""
        if isinstance(value, float):
            return f'{value:.6f}'

        if isinstance(value, (dict, list)):
            return dumps(value, ensure_ascii=False, separators=(',', ':'))

        if isinstance(value, str) and (not value or ' ' in value or '"' in value):
            return dumps(value, ensure_ascii=False)

        return f'{value}'


_handler: logging.Handler | None = None


def configure_logging(level: int | str = logging.INFO,
                      style: LogFormat = 'text',
                      handler: logging.Handler | None = None) -> logging.Handler:
    """Attach a structured handler to the package logger.

    Calling it again replaces the previously attached handler, so the
    package logger never emits duplicate lines.

    Args:
        level: Level of the package logger.
        style: Rendering of structured fields.
        handler: Handler to use; defaults to a stream handler on stderr.

    Returns:
        The attached handler.
    """
    global _handler  # noqa: PLW0603

    logger = get_logger()
    if _handler is not None:
        logger.removeHandler(_handler)

    _handler = handler or logging.StreamHandler()
    _handler.setFormatter(StructuredFormatter(
        '%(asctime)s %(levelname)s %(name)s %(message)s',
        style=style,
    ))

    logger.addHandler(_handler)
    logger.setLevel(level)

    return _handler


def reset_logging() -> None:
    """Detach the handler attached by `configure_logging`, if any."""
    global _handler  # noqa: PLW0603

    if _handler is None:
        return

    get_logger().removeHandler(_handler)
    _handler = None
