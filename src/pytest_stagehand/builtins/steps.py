"""Reusable protocol-level steps.

These steps talk to the service through the client bound to the
scenario context and inspect responses stored in the context. Domain
specific steps are usually written by the project; the builtins cover
the generic request and response plumbing.
"""

from string import Formatter
from typing import TYPE_CHECKING, Any, Literal

from httpx import Response, TransportError
from pydantic import Field

from pytest_stagehand.builtins.lookups import PathLookup
from pytest_stagehand.builtins.matchers import matches
from pytest_stagehand.errors import ExpectationFailed, InfrastructureError, InvalidContextKey
from pytest_stagehand.names import LAST_RESPONSE, ContextKey, is_valid_key
from pytest_stagehand.steps import ActStep, ArrangeStep, AssertStep

if TYPE_CHECKING:
    from logging import Logger, LoggerAdapter

if TYPE_CHECKING:
    from pytest_stagehand.context import ScenarioContext
    from pytest_stagehand.values import RuntimeValue

type HttpMethod = Literal['GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'HEAD', 'OPTIONS']


def _read_response(context: 'ScenarioContext', key: str) -> Response:
    """Read a stored response, failing as an authoring error if absent."""
    return context.get(key, Response)


def _render_path(context: 'ScenarioContext', path: str) -> str:
    """Substitute `{key}` placeholders with context values.

    Placeholders name context keys literally, dots included, so
    `{events.created}` reads the `events.created` key. Conversions
    (`!r`, `!s`) and format specs are applied to the value.

    Raises:
        InvalidContextKey: If the template is malformed or a placeholder
            is empty, positional or not a valid key.
        MissingContextValue: If a placeholder key was never set.
    """
    formatter = Formatter()

    try:
        fields = list(formatter.parse(path))
    except ValueError as error:
        raise InvalidContextKey(f'Malformed path template {path!r}: {error}') from error

    rendered = []
    for literal, name, spec, conversion in fields:
        rendered.append(literal)
        if name is None:
            continue

        if not is_valid_key(name):
            raise InvalidContextKey(f'Invalid placeholder {{{name}}} in path {path!r}')

        try:
            value = formatter.convert_field(context.get(name), conversion)
        except ValueError as error:
            raise InvalidContextKey(f'Invalid placeholder {{{name}}} in path {path!r}') from error

        rendered.append(formatter.format_field(value, spec or ''))

    return ''.join(rendered)


class SetValue(ArrangeStep):
    """Store a literal value in the scenario context."""

    key: ContextKey
    value: Any = None

    def execute(self, context: 'ScenarioContext',
                logger: 'Logger | LoggerAdapter[Logger]') -> None:  # noqa: ARG002
        context.set(self.key, self.value)


class SendRequest(ActStep):
    """Send one HTTP request through the service's public surface.

    The isolation header of the context is always added, so business
    data created by the request is partitioned per test. The response
    is stored under `output`, whatever its status code: asserting on it
    is left to assert steps.

    Path placeholders such as `/events/{event_id}` are filled from the
    scenario context.
    """

    method: HttpMethod = 'GET'
    path: str = Field(
        title='Path',
        description='Request path, optionally with `{key}` context placeholders.',
    )
    body: Any = Field(
        default=None,
        title='JSON body',
        description='Payload serialized as the JSON request body.',
    )
    params: dict[str, Any] = Field(default_factory=dict)
    headers: dict[str, str] = Field(default_factory=dict)
    output: ContextKey = LAST_RESPONSE

    def execute(self, context: 'ScenarioContext',
                logger: 'Logger | LoggerAdapter[Logger]') -> None:
        path = _render_path(context, self.path)
        headers = {**self.headers, **context.isolation_headers()}

        options: dict[str, RuntimeValue] = {
            'params': self.params or None,
            'headers': headers,
        }
        if self.body is not None:
            options['json'] = self.body

        try:
            response = context.client.request(self.method, path, **options)
        except TransportError as error:
            raise InfrastructureError(
                f'{self.method} {path} failed: {error!r}',
            ) from error

        logger.debug('%s %s -> %s', self.method, path, response.status_code)

        context.set(self.output, response)


class ExpectStatus(AssertStep):
    """Check the status code of a stored response.

    Without an explicit `status`, any 2xx code is accepted.
    """

    status: int | None = Field(default=None, ge=100, le=599)
    source: ContextKey = LAST_RESPONSE

    def execute(self, context: 'ScenarioContext',
                logger: 'Logger | LoggerAdapter[Logger]') -> None:  # noqa: ARG002
        response = _read_response(context, self.source)

        if self.status is None:
            if not response.is_success:
                raise ExpectationFailed(
                    'Response status is not successful',
                    expected='2xx',
                    observed=response.status_code,
                )
            return

        if response.status_code != self.status:
            raise ExpectationFailed(
                'Unexpected response status',
                expected=self.status,
                observed=response.status_code,
            )


class ExpectJson(AssertStep):
    """Check a value inside the JSON body of a stored response."""

    path: str | None = Field(
        default=None,
        title='Path',
        description='Dotted path into the body, e.g. `errors.0.code`.',
    )
    match: Any = None
    partial: bool = False
    source: ContextKey = LAST_RESPONSE

    def execute(self, context: 'ScenarioContext',
                logger: 'Logger | LoggerAdapter[Logger]') -> None:  # noqa: ARG002
        response = _read_response(context, self.source)

        try:
            body = response.json()
        except ValueError as error:
            raise ExpectationFailed(
                'Response body is not JSON',
                expected='application/json',
                observed=response.headers.get('content-type'),
            ) from error

        observed = PathLookup(self.path)(body)
        if not matches(observed, self.match, partial=self.partial):
            raise ExpectationFailed(
                f'Unexpected value at {self.path or "<body>"!r}',
                expected=self.match,
                observed=observed,
            )


class ExpectValue(AssertStep):
    """Check a value stored in the scenario context."""

    key: ContextKey
    match: Any = None
    partial: bool = False

    def execute(self, context: 'ScenarioContext',
                logger: 'Logger | LoggerAdapter[Logger]') -> None:  # noqa: ARG002
        observed = context.get(self.key)

        if not matches(observed, self.match, partial=self.partial):
            raise ExpectationFailed(
                f'Unexpected context value {self.key!r}',
                expected=self.match,
                observed=observed,
            )
