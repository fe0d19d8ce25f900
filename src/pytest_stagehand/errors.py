"""Core exception hierarchy.

This module defines the error taxonomy of the scenario engine:

- assertion failures, raised as `AssertionError` (optionally the richer
  `ExpectationFailed` carrying expected and observed values);
- authoring errors, raised when a scenario asks for data or collaborators
  that were never provided;
- infrastructure errors, raised when a call to the application or the
  database fails for reasons unrelated to the behavior under test;
- fixture errors, raised when a shared fixture cannot be provisioned or
  is no longer trustworthy.

All errors format themselves with location lines and a YAML snippet of
the failing step, so a failing run tells one clear causal story.
"""

from os import linesep
from typing import TYPE_CHECKING, Any, TypedDict

from yaml import dump

from pytest_stagehand.values import represent

if TYPE_CHECKING:
    from typing import Self

if TYPE_CHECKING:
    from pytest_stagehand.values import RuntimeValue

SNIPPET_ELLIPSIS = f' ...{linesep}'
SNIPPET_SEPARATOR = f' ---{linesep}'
SNIPPET_INDENT = 2

FORMAT_SCENARIO = '<unnamed scenario>'
FORMAT_INDENT = 4


class ErrorContext(TypedDict, total=False):
    """Container describing contextual information for error formatting.

    All fields are optional; the formatter adapts output based on
    provided values.
    """

    #: Title of the scenario where the error occurred.
    scenario: str | None
    #: Isolation key of the failing run.
    isolation_key: str | None

    #: Phase where the error occurred.
    phase: str | None
    #: Position of the step within its phase.
    step_num: int | None
    #: Human-readable identity of the failing step.
    step: str | None

    #: Underlying exception that triggered formatting.
    error: BaseException | None

    #: Keys present in the context at the moment of failure.
    keys: list[str] | None
    #: Compact configuration of the failing step.
    element: Any


class ErrorFormatter:
    """Utility class for formatting scenario errors.

    This formatter produces human-readable messages with optional
    location metadata and a YAML snippet describing the failing step
    and the state of the context.
    """

    @classmethod
    def format(cls, message: str, context: ErrorContext | None = None) -> str:
        """Format an error message using contextual information.

        Args:
            message: Base human-readable error message.
            context: Optional error context with location and data.

        Returns:
            A fully formatted error message suitable for display.
        """
        if not context:
            return message

        message += linesep
        message += cls.get_location_string(context, indent=FORMAT_INDENT)
        message += cls.get_snippet_string(context, indent=FORMAT_INDENT * 2)

        return message

    @classmethod
    def get_location_string(cls, context: ErrorContext, *,
                            indent: str | int | None = None) -> str:
        """Format execution location information.

        Args:
            context: Error context containing location metadata.
            indent: Optional indentation (string or number of spaces).

        Returns:
            A formatted location string including scenario title,
            isolation key, phase and step number when available.
        """
        indent = cls._ensure_indent(indent)

        scenario = context.get('scenario')
        if not scenario:
            scenario = FORMAT_SCENARIO

        message = f'{indent}in "{scenario}"'
        if isolation_key := context.get('isolation_key'):
            message += f' [{isolation_key}]'
        message += linesep

        if phase := context.get('phase'):
            message += f'{indent}on {phase} phase'
            if (step_num := context.get('step_num')) is not None:
                step_num += 1
                message += f', step {step_num}'
            if step := context.get('step'):
                message += f' ({step})'
            message += linesep

        return message

    @classmethod
    def get_snippet_string(cls, context: ErrorContext, *,
                           indent: str | int | None = None) -> str:
        """Generate a formatted snippet illustrating the error context.

        Args:
            context: Error context containing step and context data.
            indent: Optional indentation (string or number of spaces).

        Returns:
            A formatted multi-line snippet string, or an empty string
            if no snippet data is available.
        """
        indent = cls._ensure_indent(indent)

        element = context.get('element')
        if element is None:
            return ''

        snippet = f'{indent}{SNIPPET_ELLIPSIS}'

        if keys := context.get('keys'):
            snippet += cls._make_yaml({'context': list(keys)}, indent)
            snippet += linesep
            snippet += f'{indent}{SNIPPET_SEPARATOR}'

        snippet += cls._make_yaml(element, indent)
        snippet += linesep

        return snippet

    @classmethod
    def _make_yaml(cls, value: 'RuntimeValue', indent: str = '') -> str:
        """Serialize a value to a YAML-formatted string.

        The value is first reduced to its compact representation so that
        opaque runtime objects never reach the YAML emitter.

        Args:
            value: Arbitrary value to serialize.
            indent: Optional indentation prefix.

        Returns:
            A YAML-formatted string representation of the value.
        """
        data = dump(
            represent(value),
            indent=SNIPPET_INDENT,
            sort_keys=False,
            allow_unicode=True,
        )

        return cls._make_indent(data, indent)

    @staticmethod
    def _make_indent(value: str, indent: str) -> str:
        """Apply indentation to a multi-line string.

        Empty or whitespace-only lines are omitted.
        """
        if not indent:
            return value

        return linesep.join(
            f'{indent}{line}'
            for line in value.splitlines()
            if line.strip()
        )

    @staticmethod
    def _ensure_indent(indent: str | int | None = None) -> str:
        """Normalize indentation input."""
        if isinstance(indent, int) and indent > 0:
            return ' ' * indent

        if isinstance(indent, str):
            return indent

        return ''


class ExpectationFailed(AssertionError):  # noqa: N818
    """Assertion failure carrying expected and observed values.

    Steps may raise a plain `AssertionError` (for example through the
    `assert` statement); this subclass adds the values needed to report
    what was expected against what was observed.
    """

    def __init__(self, message: str, *,
                 expected: 'RuntimeValue' = None,
                 observed: 'RuntimeValue' = None) -> None:
        """Initialize an expectation failure.

        Args:
            message: Human-readable description of the expectation.
            expected: Value the step expected.
            observed: Value the step observed.
        """
        self.message = message
        self.expected = expected
        self.observed = observed

        super().__init__(message)

    def __str__(self) -> str:
        """String representation with expected and observed values."""
        return (
            f'{self.message}{linesep}'
            f'{' ' * FORMAT_INDENT}expected: {represent(self.expected)!r}{linesep}'
            f'{' ' * FORMAT_INDENT}observed: {represent(self.observed)!r}'
        )


class StagehandError(Exception, ErrorFormatter):
    """Base exception for all pytest-stagehand errors.

    All custom exceptions raised by the library inherit from this class
    to allow unified error handling by callers.
    """

    def __init__(self, message: str, *,
                 context: ErrorContext | None = None) -> None:
        """Initialize an error.

        Args:
            message: Human-readable error description.
            context: Error context containing optional runtime values.
        """
        self.message = message
        self.context = context

        super().__init__(message)

    def __str__(self) -> str:
        """String represenatation."""
        return self.format(self.message, self.context)

    def with_context(self, context: ErrorContext) -> 'Self':
        """Attach execution context to this error.

        Existing context values win over the new ones, so the innermost
        caller keeps the most precise location.

        Args:
            context: Additional error context.

        Returns:
            The same error instance.
        """
        self.context = ErrorContext({**context, **(self.context or {})})  # type: ignore[typeddict-item]

        return self


class AuthoringError(StagehandError):
    """Error raised when a scenario is assembled incorrectly.

    Authoring errors point at the test, not at the application: a step
    requested data or a collaborator that was never provided, or a step
    was placed where its role does not belong.
    """


class MissingContextValue(AuthoringError, LookupError):
    """Error raised when a context key was never set or has another type."""

    def __init__(self, key: str, *, expected: type | None = None,
                 actual: type | None = None) -> None:
        """Initialize a missing value error.

        Args:
            key: Requested context key.
            expected: Type requested by the reader, if any.
            actual: Type of the stored value, if the key exists.
        """
        self.key = key
        self.expected = expected
        self.actual = actual

        message = f'Missing context value {key!r}'
        if expected is not None and actual is not None:
            message += (
                f': expected {expected.__qualname__}, '
                f'stored {actual.__qualname__}'
            )

        super().__init__(message)


class DependencyNotRegistered(AuthoringError, LookupError):
    """Error raised when a requested dependency has no provider."""

    def __init__(self, key: 'RuntimeValue') -> None:
        """Initialize a resolution error.

        Args:
            key: Requested dependency key (a type or a string token).
        """
        self.key = key

        name = key.__qualname__ if isinstance(key, type) else repr(key)

        super().__init__(f'Dependency {name} is not registered')


class InvalidContextKey(AuthoringError, ValueError):
    """Error raised when a context key does not follow naming rules."""


class BackgroundAlreadyDeclared(AuthoringError):
    """Error raised when background steps are declared twice on a context."""


class StepRoleError(AuthoringError, TypeError):
    """Error raised when a step is attached to a phase it does not belong to."""


class ContextInUse(AuthoringError):
    """Error raised when a context is shared by concurrently running scenarios."""


class InfrastructureError(StagehandError):
    """Error raised when a step's infrastructure fails mid-run.

    Connection resets, timeouts and unexpected exceptions from clients
    are reported with this type so they are not mistaken for
    business-behavior regressions.
    """


class FixtureError(StagehandError):
    """Base error for shared fixture failures.

    Fixture errors are never recovered automatically; the session is
    expected to stop once one is raised.
    """


class ProvisioningError(FixtureError):
    """Error raised when a fixture fails to start within its bounds."""


class FixtureNotStarted(FixtureError):
    """Error raised when a fixture is used before it was started."""


class FixtureCorrupted(FixtureError):
    """Error raised when shared fixture state can no longer be trusted.

    A step raises this error to escalate a step-level failure into a
    fixture-level one; the remaining session is aborted.
    """
